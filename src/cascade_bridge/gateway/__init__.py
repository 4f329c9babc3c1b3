"""Chat platform bindings of ``cascade_bridge.surface``."""
