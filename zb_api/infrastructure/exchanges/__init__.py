"""
Exchange adapters: ZB public REST client and WebSocket subscription layer.
"""
