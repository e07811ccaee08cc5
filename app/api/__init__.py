from app.api.state import FLOW_KEY, create_app

__all__ = ["FLOW_KEY", "create_app"]
