"""Error taxonomy for the ingestion core.

Every error carries a ``retryable`` flag. Retryable errors are handed back to
the job queue, which re-delivers the job after its backoff; everything else
fails the job immediately.
"""


class AssetIngestError(Exception):
    """Base exception for ingestion errors."""

    retryable = False


class MissingParameter(AssetIngestError):
    """A required path parameter is absent or empty."""

    pass


class InvalidPath(AssetIngestError):
    """A resolved path contains ``..``, ``//`` or is not relative."""

    pass


class PathTraversal(AssetIngestError):
    """A path resolves outside the storage root."""

    pass


class TargetNotFound(AssetIngestError):
    """The target sub-asset does not exist."""

    pass


class VersionConflict(AssetIngestError):
    """Another upload committed the same version first."""

    pass


class PathOccupied(VersionConflict):
    """The versioned path already holds different bytes."""

    pass


class StorageIOError(AssetIngestError):
    """Filesystem failure while reading or writing content."""

    retryable = True


class RegistryTransactionError(AssetIngestError):
    """The registry could not complete a transaction."""

    retryable = True


class JobNotFoundError(AssetIngestError):
    """Upload job not found."""

    pass


class InvalidJobStateError(AssetIngestError):
    """Job is in a terminal state and cannot transition."""

    pass


class UploadValidationError(AssetIngestError):
    """Upload request rejected before a job is created."""

    pass
