"""Input/output: audio decoding and report export."""

from scenesync.io.decoder import AudioDecoder, validate_audio_file

__all__ = ["AudioDecoder", "validate_audio_file"]
