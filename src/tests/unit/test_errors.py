"""Tests for error handling classes."""

import pytest

from mediahost.core.errors import (
    ConflictError,
    ErrorCode,
    ForbiddenError,
    ImagePullFailedError,
    InternalError,
    InvalidRequestError,
    InvalidWorkloadTypeError,
    MediaHostError,
    MountFailedError,
    NotFoundError,
    RuntimeCreateFailedError,
    RuntimeOperationFailedError,
    RuntimeUnavailableError,
    StorageOperationFailedError,
    StorageUnreachableError,
    UnauthorizedError,
    error_summary,
)


class TestMountFailedError:
    """Tests for MountFailedError."""

    def test_inherits_mediahost_error(self) -> None:
        """MountFailedError should inherit from MediaHostError."""
        exc = MountFailedError()
        assert isinstance(exc, MediaHostError)
        assert isinstance(exc, Exception)

    def test_has_correct_error_code(self) -> None:
        exc = MountFailedError()
        assert exc.code == ErrorCode.MOUNT_FAILED

    def test_has_correct_status_code(self) -> None:
        exc = MountFailedError()
        assert exc.status_code == 502

    def test_custom_message(self) -> None:
        """Should accept custom message."""
        exc = MountFailedError("fuse: device not found")
        assert exc.message == "fuse: device not found"
        assert str(exc) == "fuse: device not found"

    def test_admin_response_has_raw_detail(self) -> None:
        exc = MountFailedError("read: Connection reset by peer")
        resp = exc.to_response(include_detail=True)

        assert resp.error.code == "MOUNT_FAILED"
        assert resp.error.message == "read: Connection reset by peer"

    def test_customer_response_hides_detail(self) -> None:
        """Remote stderr must never reach a customer."""
        exc = MountFailedError("read: Connection reset by peer")
        resp = exc.to_response(include_detail=False)

        assert resp.error.code == "MOUNT_FAILED"
        assert resp.error.message == "Storage could not be mounted"


class TestErrorCodeEnum:
    """Tests for ErrorCode enum."""

    def test_all_error_codes(self) -> None:
        """All expected error codes should exist."""
        expected = [
            "UNAUTHORIZED",
            "FORBIDDEN",
            "NOT_FOUND",
            "CONFLICT",
            "INVALID_REQUEST",
            "INVALID_WORKLOAD_TYPE",
            "STORAGE_UNREACHABLE",
            "STORAGE_OPERATION_FAILED",
            "MOUNT_FAILED",
            "IMAGE_PULL_FAILED",
            "RUNTIME_CREATE_FAILED",
            "RUNTIME_OPERATION_FAILED",
            "RUNTIME_UNAVAILABLE",
            "RUNTIME_INSTANCE_MISSING",
            "INTERRUPTED",
            "INTERNAL_ERROR",
        ]
        for code in expected:
            assert hasattr(ErrorCode, code)


class TestOtherErrors:
    """Tests for other error classes to ensure consistency."""

    @pytest.mark.parametrize(
        "error_class,expected_code,expected_status",
        [
            (UnauthorizedError, ErrorCode.UNAUTHORIZED, 401),
            (ForbiddenError, ErrorCode.FORBIDDEN, 403),
            (NotFoundError, ErrorCode.NOT_FOUND, 404),
            (ConflictError, ErrorCode.CONFLICT, 409),
            (InvalidRequestError, ErrorCode.INVALID_REQUEST, 400),
            (InvalidWorkloadTypeError, ErrorCode.INVALID_WORKLOAD_TYPE, 400),
            (StorageUnreachableError, ErrorCode.STORAGE_UNREACHABLE, 503),
            (StorageOperationFailedError, ErrorCode.STORAGE_OPERATION_FAILED, 502),
            (ImagePullFailedError, ErrorCode.IMAGE_PULL_FAILED, 502),
            (RuntimeCreateFailedError, ErrorCode.RUNTIME_CREATE_FAILED, 502),
            (RuntimeOperationFailedError, ErrorCode.RUNTIME_OPERATION_FAILED, 502),
            (RuntimeUnavailableError, ErrorCode.RUNTIME_UNAVAILABLE, 503),
            (InternalError, ErrorCode.INTERNAL_ERROR, 500),
        ],
    )
    def test_error_class_properties(
        self,
        error_class: type[MediaHostError],
        expected_code: ErrorCode,
        expected_status: int,
    ) -> None:
        """All error classes should have correct code and status."""
        exc = error_class()
        assert exc.code == expected_code
        assert exc.status_code == expected_status
        assert isinstance(exc, MediaHostError)

    @pytest.mark.parametrize(
        "error_class", [ConflictError, InvalidRequestError, InvalidWorkloadTypeError]
    )
    def test_client_errors_show_own_message(self, error_class: type[MediaHostError]) -> None:
        """Validation and conflict messages are safe to show customers."""
        exc = error_class("Subdomain 'tv' is already taken")
        resp = exc.to_response(include_detail=False)
        assert resp.error.message == "Subdomain 'tv' is already taken"

    def test_public_message_not_shared_between_instances(self) -> None:
        first = ConflictError("first")
        second = ConflictError("second")
        assert first.public_message == "first"
        assert second.public_message == "second"


class TestErrorSummary:
    """Tests for error_summary."""

    def test_none(self) -> None:
        assert error_summary(None) is None

    def test_known_code(self) -> None:
        assert error_summary("INTERRUPTED") == "Provisioning was interrupted"

    def test_unknown_code(self) -> None:
        """Codes from older releases still get a summary."""
        assert error_summary("SOMETHING_ELSE") == "Unexpected error"
