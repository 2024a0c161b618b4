from geyser.api.app import create_app

__all__ = ["create_app"]
