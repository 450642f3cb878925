from .model import DiffSingerModel, DurationModel, LinguisticModel

__all__ = [
    "DiffSingerModel",
    "DurationModel",
    "LinguisticModel",
]
