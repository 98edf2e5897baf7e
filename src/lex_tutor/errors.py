"""Exception hierarchy for the tutor."""


class LexTutorError(Exception):
    """Base class for errors surfaced to the user."""


class DuplicateUser(LexTutorError):
    def __init__(self, username: str):
        super().__init__(f"Username '{username}' already exists. Please choose another one.")
        self.username = username


class InvalidCredentials(LexTutorError):
    def __init__(self):
        super().__init__("Invalid username or password.")


class GenerationFailed(LexTutorError):
    """The content generation gateway failed or returned unusable content."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class EmptyGenerationResult(GenerationFailed):
    def __init__(self, what: str = "content"):
        super().__init__(f"The AI returned no {what}. Please try again.")


class StorageUnavailable(LexTutorError):
    """Raised inside the storage layer only; callers see an absent value instead."""


class SessionBusy(LexTutorError):
    def __init__(self):
        super().__init__("A request is already in progress. Please wait for it to finish.")


class StudyFileError(LexTutorError):
    """A study or syllabus file could not be accepted."""
