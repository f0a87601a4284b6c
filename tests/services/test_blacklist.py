"""Tests for the persisted blacklist."""
import pytest

from genbot.core.exceptions import AlreadyExistsError, NotFoundError
from genbot.services.blacklist import Blacklist


@pytest.fixture
def path(tmp_path):
    return tmp_path / "data" / "blacklist.txt"


class TestBlacklist:

    def test_load_creates_missing_file(self, path):
        blacklist = Blacklist(str(path))

        assert blacklist.load() == 0
        assert path.exists()

    def test_load_reads_one_name_per_line(self, path):
        path.parent.mkdir(parents=True)
        path.write_text("mallory\r\n\ntrudy\n  \n")

        blacklist = Blacklist(str(path))

        assert blacklist.load() == 2
        assert blacklist.is_banned("mallory")
        assert blacklist.usernames() == ["mallory", "trudy"]

    def test_ban_persists(self, path):
        blacklist = Blacklist(str(path))
        blacklist.load()

        blacklist.ban("mallory")

        assert blacklist.is_banned("mallory")
        reloaded = Blacklist(str(path))
        reloaded.load()
        assert reloaded.is_banned("mallory")

    def test_ban_twice(self, path):
        blacklist = Blacklist(str(path))
        blacklist.load()
        blacklist.ban("mallory")

        with pytest.raises(AlreadyExistsError):
            blacklist.ban("mallory")

    def test_unban(self, path):
        blacklist = Blacklist(str(path))
        blacklist.load()
        blacklist.ban("mallory")

        blacklist.unban("mallory")

        assert not blacklist.is_banned("mallory")
        assert path.read_text() == ""

    def test_unban_unknown(self, path):
        blacklist = Blacklist(str(path))
        blacklist.load()

        with pytest.raises(NotFoundError):
            blacklist.unban("alice")

    def test_failed_write_rolls_back(self, tmp_path):
        # Parent directory missing and never created: write fails
        blacklist = Blacklist(str(tmp_path / "missing" / "blacklist.txt"))

        with pytest.raises(OSError):
            blacklist.ban("mallory")
        assert not blacklist.is_banned("mallory")
