"""Tests for auth and profile commands."""

from __future__ import annotations

import io
import json
import stat
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from pytest_mock import MockerFixture

from gmail_cli.auth.credentials import CredentialManager
from gmail_cli.auth.oauth import FlowResult
from gmail_cli.commands.base import (
    ResponseKeys,
    build_error_response,
    build_success_response,
    error_response_from_exception,
)
from gmail_cli.utils.errors import NotAuthenticatedError, OAuthCsrfMismatchError


@pytest.fixture
def patched_commands(manager: CredentialManager, mocker: MockerFixture) -> MagicMock:
    """Point the commands at the temporary manager; mock the client factory."""
    mocker.patch("gmail_cli.commands.auth.credential_manager", manager)
    mocker.patch("gmail_cli.commands.profile.credential_manager", manager)
    mock_factory = mocker.patch("gmail_cli.commands.auth.client_factory")
    mocker.patch("gmail_cli.commands.profile.client_factory", mock_factory)
    mocker.patch("gmail_cli.commands.auth.audit_logger")
    mocker.patch("gmail_cli.commands.profile.audit_logger")
    return mock_factory


class TestResponseBuilders:
    """Tests for commands/base.py utilities."""

    def test_success_response(self) -> None:
        result = build_success_response(data={"key": "value"}, message="Done", count=1)
        assert result == {
            ResponseKeys.STATUS: "success",
            ResponseKeys.DATA: {"key": "value"},
            ResponseKeys.MESSAGE: "Done",
            ResponseKeys.COUNT: 1,
        }

    def test_error_response(self) -> None:
        result = build_error_response("Boom", error_code="X", details={"hint": "h"})
        assert result == {"status": "error", "error": "Boom", "error_code": "X", "hint": "h"}

    def test_known_error_has_code_and_hint(self) -> None:
        result = error_response_from_exception(NotAuthenticatedError("work"), "Status")

        assert result["status"] == "error"
        assert result["error_code"] == "NotAuthenticatedError"
        assert result["hint"] == "Run: gmail-cli auth login --profile work"

    def test_messages_are_sanitized(self) -> None:
        error = OAuthCsrfMismatchError("failed with access_token=ya29.leak")
        result = error_response_from_exception(error, "Login")
        assert "ya29.leak" not in result["error"]

    def test_unexpected_error(self) -> None:
        result = error_response_from_exception(RuntimeError("Bearer abc.def"), "Login")

        assert result["error_code"] == "UnexpectedError"
        assert result["error"].startswith("Login failed")
        assert "abc.def" not in result["error"]


class TestAuthLogin:
    """Tests for auth_login."""

    @pytest.mark.asyncio
    async def test_login_with_flags(self, patched_commands: MagicMock) -> None:
        with patch("gmail_cli.commands.auth.OAuthFlowController") as mock_controller:
            mock_controller.return_value.run.return_value = FlowResult(
                profile="work", email="work@example.com"
            )

            from gmail_cli.commands.auth import auth_login

            result = await auth_login("cid", "secret", profile="work")

        assert result["status"] == "success"
        assert result["data"] == {"profile": "work", "email": "work@example.com"}
        mock_controller.return_value.run.assert_called_once_with(
            "cid", "secret", profile="work"
        )
        patched_commands.invalidate.assert_called_once_with("work")

    @pytest.mark.asyncio
    async def test_login_reuses_stored_client_credentials(
        self, patched_commands: MagicMock, manager: CredentialManager
    ) -> None:
        manager.set_client_credentials("stored-id", "stored-secret", profile="default")

        with patch("gmail_cli.commands.auth.OAuthFlowController") as mock_controller:
            mock_controller.return_value.run.return_value = FlowResult(profile="default")

            from gmail_cli.commands.auth import auth_login

            result = await auth_login()

        assert result["status"] == "success"
        mock_controller.return_value.run.assert_called_once_with(
            "stored-id", "stored-secret", profile="default"
        )

    @pytest.mark.asyncio
    async def test_login_without_client_credentials(self, patched_commands: MagicMock) -> None:
        from gmail_cli.commands.auth import auth_login

        with patch("gmail_cli.commands.auth.OAuthFlowController") as mock_controller:
            result = await auth_login(profile="work")

        assert result["status"] == "error"
        assert result["error_code"] == "MissingCredentialsError"
        assert "--client-id" in result["hint"]
        mock_controller.assert_not_called()

    @pytest.mark.asyncio
    async def test_login_flow_failure(self, patched_commands: MagicMock) -> None:
        with patch("gmail_cli.commands.auth.OAuthFlowController") as mock_controller:
            mock_controller.return_value.run.side_effect = OAuthCsrfMismatchError(
                "CSRF validation failed: state parameter mismatch"
            )

            from gmail_cli.commands.auth import auth_login

            result = await auth_login("cid", "secret", profile="work")

        assert result["status"] == "error"
        assert result["error_code"] == "OAuthCsrfMismatchError"
        patched_commands.invalidate.assert_not_called()

    @pytest.mark.asyncio
    async def test_login_invalid_profile_name(self, patched_commands: MagicMock) -> None:
        from gmail_cli.commands.auth import auth_login

        result = await auth_login("cid", "secret", profile="../x")
        assert result["error_code"] == "InvalidProfileNameError"


class TestAuthStatusLogout:
    """Tests for auth_status and auth_logout."""

    @pytest.mark.asyncio
    async def test_status_authenticated(
        self, patched_commands: MagicMock, authenticated_profile: str
    ) -> None:
        from gmail_cli.commands.auth import auth_status

        result = await auth_status()

        data = result["data"]
        assert result["status"] == "success"
        assert data["profile"] == "work"
        assert data["authenticated"] is True
        assert data["email"] == "work@example.com"
        assert data["has_refresh_token"] is True
        assert data["storage"] == "file"
        assert data["expires_at"].endswith("Z")

    @pytest.mark.asyncio
    async def test_status_not_authenticated(self, patched_commands: MagicMock) -> None:
        from gmail_cli.commands.auth import auth_status

        result = await auth_status("work")

        assert result["status"] == "success"
        assert result["data"]["authenticated"] is False
        assert "auth login --profile work" in result["message"]

    @pytest.mark.asyncio
    async def test_logout(
        self,
        patched_commands: MagicMock,
        manager: CredentialManager,
        authenticated_profile: str,
    ) -> None:
        from gmail_cli.commands.auth import auth_logout

        result = await auth_logout()

        assert result["status"] == "success"
        assert manager.get_tokens(authenticated_profile) is None
        patched_commands.invalidate.assert_called_once_with(authenticated_profile)


class TestProfileCommands:
    """Tests for list, current, switch and delete."""

    @pytest.mark.asyncio
    async def test_list(
        self,
        patched_commands: MagicMock,
        manager: CredentialManager,
        authenticated_profile: str,
    ) -> None:
        from gmail_cli.commands.profile import profile_list

        manager.registry.add("personal", activate=False)
        result = await profile_list()

        assert result["count"] == 2
        assert [p["name"] for p in result["data"]] == ["personal", "work"]

    @pytest.mark.asyncio
    async def test_current(
        self, patched_commands: MagicMock, authenticated_profile: str
    ) -> None:
        from gmail_cli.commands.profile import profile_current

        result = await profile_current()
        assert result["data"] == {
            "profile": "work",
            "email": "work@example.com",
            "registered": True,
        }

    @pytest.mark.asyncio
    async def test_switch(
        self,
        patched_commands: MagicMock,
        manager: CredentialManager,
        authenticated_profile: str,
    ) -> None:
        from gmail_cli.commands.profile import profile_switch

        manager.registry.add("personal", activate=False)
        result = await profile_switch("personal")

        assert result["status"] == "success"
        assert manager.registry.get_active() == "personal"

    @pytest.mark.asyncio
    async def test_switch_unknown(self, patched_commands: MagicMock) -> None:
        from gmail_cli.commands.profile import profile_switch

        result = await profile_switch("missing")

        assert result["error_code"] == "ProfileNotFoundError"
        assert result["hint"] == "Run: gmail-cli profile list"

    @pytest.mark.asyncio
    async def test_delete(
        self,
        patched_commands: MagicMock,
        manager: CredentialManager,
        authenticated_profile: str,
    ) -> None:
        from gmail_cli.commands.profile import profile_delete

        manager.registry.add("personal")
        result = await profile_delete(authenticated_profile)

        assert result["status"] == "success"
        assert result["data"]["secrets_deleted"] is True
        assert not manager.registry.exists(authenticated_profile)
        patched_commands.invalidate.assert_called_once_with(authenticated_profile)

    @pytest.mark.asyncio
    async def test_delete_active(
        self, patched_commands: MagicMock, authenticated_profile: str
    ) -> None:
        from gmail_cli.commands.profile import profile_delete

        result = await profile_delete(authenticated_profile)

        assert result["status"] == "error"
        assert result["error_code"] == "ActiveProfileProtectedError"
        patched_commands.invalidate.assert_not_called()


class TestExportImportCommands:
    """Tests for profile_export and profile_import."""

    @pytest.mark.asyncio
    async def test_export_to_file_is_owner_only(
        self, patched_commands: MagicMock, authenticated_profile: str, tmp_path: Path
    ) -> None:
        from gmail_cli.commands.profile import profile_export

        target = tmp_path / "work.json"
        result = await profile_export(output=str(target))

        assert result["status"] == "success"
        assert stat.S_IMODE(target.stat().st_mode) == 0o600
        bundle = json.loads(target.read_text())
        assert bundle["version"] == 1
        assert bundle["profile"] == "work"
        assert bundle["clientSecret"] == "GOCSPX-test-secret"

    @pytest.mark.asyncio
    async def test_export_tightens_existing_file(
        self, patched_commands: MagicMock, authenticated_profile: str, tmp_path: Path
    ) -> None:
        from gmail_cli.commands.profile import profile_export

        target = tmp_path / "work.json"
        target.write_text("old")
        target.chmod(0o644)

        await profile_export(output=str(target))
        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_export_to_stdout_returns_bundle(
        self, patched_commands: MagicMock, authenticated_profile: str
    ) -> None:
        from gmail_cli.commands.profile import profile_export

        result = await profile_export(output="-")
        assert result["data"]["clientId"] == "test-client-id.apps.googleusercontent.com"

    @pytest.mark.asyncio
    async def test_export_unauthenticated(self, patched_commands: MagicMock) -> None:
        from gmail_cli.commands.profile import profile_export

        result = await profile_export("work")
        assert result["error_code"] == "MissingCredentialsError"

    @pytest.mark.asyncio
    async def test_import_refuses_overwrite(
        self, patched_commands: MagicMock, authenticated_profile: str, tmp_path: Path
    ) -> None:
        from gmail_cli.commands.profile import profile_export, profile_import

        source = tmp_path / "work.json"
        await profile_export(output=str(source))

        result = await profile_import(str(source))

        assert result["error_code"] == "ProfileExistsError"
        assert "--force" in result["hint"]

    @pytest.mark.asyncio
    async def test_import_with_force(
        self,
        patched_commands: MagicMock,
        manager: CredentialManager,
        authenticated_profile: str,
        tmp_path: Path,
    ) -> None:
        from gmail_cli.commands.profile import profile_export, profile_import

        source = tmp_path / "work.json"
        await profile_export(output=str(source))
        manager.logout(authenticated_profile)

        result = await profile_import(str(source), force=True)

        assert result["status"] == "success"
        assert manager.is_authenticated(authenticated_profile)
        patched_commands.invalidate.assert_called_once_with(authenticated_profile)

    @pytest.mark.asyncio
    async def test_import_from_stdin_under_new_name(
        self,
        patched_commands: MagicMock,
        manager: CredentialManager,
        authenticated_profile: str,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        from gmail_cli.commands.profile import profile_export, profile_import

        exported = await profile_export()
        monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(exported["data"])))

        result = await profile_import(profile="laptop")

        assert result["data"] == {"profile": "laptop", "email": "work@example.com"}
        assert manager.registry.get_active() == "laptop"

    @pytest.mark.asyncio
    async def test_import_invalid_json(
        self, patched_commands: MagicMock, tmp_path: Path
    ) -> None:
        from gmail_cli.commands.profile import profile_import

        source = tmp_path / "bad.json"
        source.write_text("{not json")

        result = await profile_import(str(source))
        assert result["error_code"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_import_unsupported_version(
        self, patched_commands: MagicMock, tmp_path: Path
    ) -> None:
        from gmail_cli.commands.profile import profile_import

        source = tmp_path / "v2.json"
        source.write_text(json.dumps({"version": 2, "profile": "work"}))

        result = await profile_import(str(source))
        assert result["error_code"] == "UnsupportedBundleVersionError"
