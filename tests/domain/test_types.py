"""Tests for domain enumerations and the folder vocabulary."""

import pytest

from crm_inbox.domain.types import (
    OUTBOUND_FOLDERS,
    PROVIDER_CHANNELS,
    Channel,
    Folder,
    Provider,
    SyncState,
    is_outbound_folder,
)


class TestFolderEnum:
    """Tests for the canonical Folder enum."""

    def test_members(self) -> None:
        assert {f.value for f in Folder} == {
            "inbox",
            "sent",
            "trash",
            "archive",
            "drafts",
            "important",
        }

    def test_string_serialization(self) -> None:
        assert str(Folder.SENT) == "sent"


class TestOutboundFolders:
    """Only sent and drafts hold messages written by the account holder."""

    def test_outbound_set(self) -> None:
        assert frozenset({"sent", "drafts"}) == OUTBOUND_FOLDERS

    @pytest.mark.parametrize(
        ("folder", "expected"),
        [
            ("sent", True),
            ("drafts", True),
            ("inbox", False),
            ("archive", False),
            ("trash", False),
            ("important", False),
            ("custom-label", False),
        ],
    )
    def test_is_outbound_folder(self, folder: str, expected: bool) -> None:
        assert is_outbound_folder(folder) is expected


class TestProviderChannels:
    """Each provider belongs to exactly one channel family."""

    def test_mapping(self) -> None:
        assert PROVIDER_CHANNELS == {
            Provider.GMAIL: Channel.EMAIL,
            Provider.OUTLOOK: Channel.EMAIL,
            Provider.UNIPILE: Channel.LINKEDIN,
        }

    def test_sync_states(self) -> None:
        assert [s.value for s in SyncState] == ["pending", "in_progress", "completed", "error"]
