from .sequence_config import ResetCadence, SequenceConfig  # noqa: F401
from .records import Contact, Contract, Invoice  # noqa: F401
