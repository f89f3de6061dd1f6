from speedrelay.local.playback_controller import LocalPlaybackController, MediaElement

__all__ = ["LocalPlaybackController", "MediaElement"]
