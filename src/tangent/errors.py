"""Exception hierarchy shared by the chain, interpreter, providers and CLI."""


class TangentError(Exception):
    """Base class for all tangent errors."""


# -----------------------------
# Fatal errors
# -----------------------------

class ConfigError(TangentError):
    """Configuration or profile files could not be read or are invalid."""


class MissingCredentialsError(ConfigError):
    """No API key is configured for the selected vendor."""


class StorageError(TangentError):
    """A conversation could not be written to or read from disk."""


class ConversationFormatError(TangentError):
    """A persisted conversation document is malformed."""


# -----------------------------
# Chain errors
# -----------------------------

class ChainCorruptedError(TangentError):
    """The parent chain does not reach ROOT (cycle or dangling parent)."""


class MessageNotFoundError(TangentError, LookupError):
    """No stored message matches the given id or id prefix."""


class InvalidIdPrefixError(MessageNotFoundError, ValueError):
    """The id prefix is empty."""


# -----------------------------
# Interpretation errors
# -----------------------------

class CommandError(TangentError):
    """A command line could not be interpreted or executed."""


class UnknownCommandError(CommandError):
    pass


class AmbiguousCommandError(CommandError):
    pass


class ParameterError(CommandError):
    """Unknown, ambiguous, read-only or invalid generation parameter."""


class EditorError(CommandError):
    """The external editor could not be run or its result read back."""


class ShouldExit(Exception):
    """Raised by the exit command; not an error."""


# -----------------------------
# Provider errors
# -----------------------------

class ProviderError(TangentError):
    """Network or API failure while retrieving a reply."""


class RetrievalCancelled(KeyboardInterrupt):
    """The user interrupted an in-flight retrieval.

    Derives from KeyboardInterrupt so it can be raised from the SIGINT
    listener and unwind out of blocking socket reads without being caught by
    ``except Exception`` clauses in HTTP libraries.
    """
