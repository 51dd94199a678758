from models.draft import SavedDraftRecord

__all__ = [
    "SavedDraftRecord",
]
