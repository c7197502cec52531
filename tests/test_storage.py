import pytest
from botocore.exceptions import ClientError

from app.services.storage import StorageService, validate_filename
from app.shared.errors import AppError, ValidationFailedError


class RecordingS3Client:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        if self.error:
            raise self.error
        self.calls.append((operation, Params, ExpiresIn))
        return f"https://r2.example.com/{Params['Key']}?signature=abc"


@pytest.fixture
def s3():
    return RecordingS3Client()


@pytest.fixture
def storage(s3):
    return StorageService(client=s3, bucket="test-bucket", expires_in=600)


@pytest.mark.storage
class TestPresignUpload:
    def test_key_is_scoped_by_purpose_and_owner(self, storage, s3):
        result = storage.presign_upload("payment-proofs", "GCash Receipt.PNG", "image/png", 7)

        assert result["key"].startswith("payment-proofs/7/")
        assert result["key"].endswith(".png")
        assert result["expiresIn"] == 600
        operation, params, expires = s3.calls[0]
        assert operation == "put_object"
        assert params == {"Bucket": "test-bucket", "Key": result["key"], "ContentType": "image/png"}
        assert expires == 600

    def test_unknown_purpose_rejected(self, storage):
        with pytest.raises(ValidationFailedError):
            storage.presign_upload("avatars", "me.png", "image/png", 7)

    def test_content_type_must_match_purpose(self, storage):
        with pytest.raises(ValidationFailedError):
            storage.presign_upload("payment-qr-codes", "qr.pdf", "application/pdf", 7)

    def test_provider_failure_surfaces_as_app_error(self):
        failing = RecordingS3Client(
            error=ClientError({"Error": {"Code": "500", "Message": "boom"}}, "GeneratePresignedUrl")
        )
        service = StorageService(client=failing, bucket="test-bucket")

        with pytest.raises(AppError):
            service.presign_upload("blueprints", "plan.pdf", "application/pdf", 3)


@pytest.mark.storage
class TestPresignDownload:
    def test_download_with_filename(self, storage, s3):
        result = storage.presign_download("blueprints/3/plan.pdf", "plan-v1.pdf")

        _, params, _ = s3.calls[0]
        assert params["ResponseContentDisposition"] == 'attachment; filename="plan-v1.pdf"'
        assert result["key"] == "blueprints/3/plan.pdf"

    @pytest.mark.parametrize("key", ["", "/etc/passwd", "blueprints/../secrets", "avatars/1/me.png"])
    def test_invalid_keys_rejected(self, storage, key):
        with pytest.raises(ValidationFailedError):
            storage.presign_download(key)


@pytest.mark.storage
class TestFilenames:
    @pytest.mark.parametrize("name", ["", "noextension", "../x.png", "a/b.png", "x" * 256 + ".png"])
    def test_unsafe_names_rejected(self, name):
        with pytest.raises(ValidationFailedError):
            validate_filename(name)

    def test_extension_lowercased(self):
        assert validate_filename("Site Photo.JPEG") == "jpeg"
