class MetriError(Exception):
    """Base class for errors raised by the live transcription backend."""

    # Text safe to show the client; str(exc) may carry backend details
    client_message = "Internal error"


class MalformedControlMessage(MetriError):
    """Unparseable control frame, or a control type outside the known set."""

    @property
    def client_message(self) -> str:
        return str(self)


class TranscriptionFailed(MetriError):
    client_message = "Transcription failed. Check your API key."


class TransientStorageFailure(TranscriptionFailed):
    client_message = "Could not buffer audio chunk."


class PayloadTooLarge(TranscriptionFailed):
    def __init__(self, size: int, limit: int):
        super().__init__(f"Audio payload of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit

    @property
    def client_message(self) -> str:
        return f"Audio chunk exceeds the {self.limit // (1024 * 1024)} MB limit."
