"""Exception types raised by the clip pipeline and the job store."""

from typing import List, Optional


class ClippaError(Exception):
    """Base class for every error the backend raises on purpose."""


class ProcessError(ClippaError):
    """An external tool could not be started or exited unsuccessfully."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr_tail: Optional[List[str]] = None):
        super().__init__(message)
        self.returncode = returncode
        self.stderr_tail = stderr_tail or []

    def describe(self, max_chars: int = 500) -> str:
        """Message plus the last stderr lines, trimmed for storing on a job."""
        text = str(self)
        if self.stderr_tail:
            tail = "\n".join(self.stderr_tail)
            if len(tail) > max_chars:
                tail = "..." + tail[-max_chars:]
            text = f"{text}\n{tail}"
        return text


class ProcessTimeoutError(ProcessError):
    """The external tool ran past its deadline and was killed."""

    def __init__(self, message: str, timeout: float, returncode: Optional[int] = None, stderr_tail: Optional[List[str]] = None):
        super().__init__(message, returncode=returncode, stderr_tail=stderr_tail)
        self.timeout = timeout


class DownloadError(ClippaError):
    pass


class TranscodeError(ClippaError):
    pass


class SubtitleError(ClippaError):
    pass


class StorageError(ClippaError):
    pass


class ProbeError(ClippaError):
    pass


class JobNotFoundError(ClippaError):
    pass


class JobStateError(ClippaError):
    """A terminal job was asked to change state again."""


class QueueFullError(ClippaError):
    pass
