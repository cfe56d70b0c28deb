class RetargetError(Exception):
    """Base class for retargeting failures."""


class SkeletonNotFoundError(RetargetError):
    """No skinned mesh (and therefore no skeleton) in the target model. Fatal for the session."""


class ClipLoadError(RetargetError):
    """A single source animation could not be loaded or parsed."""


class RigPairError(RetargetError):
    """A rig-pair policy file could not be parsed."""
