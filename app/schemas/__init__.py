from app.schemas.base import (
    CamelModel,
    CategoryResponse,
    CategoryUpdate,
    ExtractedReceipt,
    ProcessReceiptRequest,
    ProcessReceiptResponse,
    ReceiptFields,
)
from app.schemas.google import (
    DriveUploadRequest,
    DriveUploadResponse,
    GoogleConnectRequest,
    GoogleStatus,
    MigrationRequest,
    MigrationResponse,
    SetupRequest,
    SetupResponse,
    SheetsReceiptData,
    SheetsSyncRequest,
    SheetsSyncResponse,
)
from app.schemas.session import (
    PhoneUploadResponse,
    UploadSessionCreated,
    UploadSessionStatus,
)
