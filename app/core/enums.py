from enum import StrEnum


class Game(StrEnum):
    GENSHIN = "GENSHIN"
    HSR = "HSR"


class BannerType(StrEnum):
    CHARACTER = "character"
    WEAPON = "weapon"
    STANDARD = "standard"
    BEGINNER = "beginner"
    CHRONICLED = "chronicled"


class ImportState(StrEnum):
    PENDING = "pending"
    FETCHING = "fetching"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
