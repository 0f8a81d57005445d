from app.models.category import CategoryModel
from app.models.profile import ProfileModel
from app.models.receipt import ReceiptModel
from app.models.sync_job import SyncJobModel
from app.models.upload_session import UploadSessionModel

__all__ = [
    "CategoryModel",
    "ProfileModel",
    "ReceiptModel",
    "SyncJobModel",
    "UploadSessionModel",
]
