from butternovel.services.view_tracker import ViewerIdentity, ViewResult, prune_expired_recent_viewers, track_view

__all__ = ["ViewerIdentity", "ViewResult", "prune_expired_recent_viewers", "track_view"]
