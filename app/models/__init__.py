from app.models.progress import ProgressSnapshot

__all__ = [
    'ProgressSnapshot'
]
