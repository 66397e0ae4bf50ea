"""
Unit tests for the cache inspection CLI.

Tests cover:
- Key derivation matches what the model writes
- Version and bump against the in-memory backend
- Argument errors
"""

import pytest

from dbaas.tablecache.cache.keys import EntityIdentity, fingerprint, query_key
from dbaas.tablecache.kv.memory import InMemoryKVCache
from dbaas.tablecache.tools.cache_cli import CacheCLI, main


class TestCacheCLI:
    """Tests for CacheCLI."""

    identity = EntityIdentity("tc", "default", "user")

    def test_query_key_matches_model_key(self):
        cli = CacheCLI(self.identity)
        args = [{"status": 1}, None, 0, 20, ""]

        assert cli.key(tag="lbc", args=args) == query_key(self.identity, "lbc", fingerprint(*args))

    def test_single_key(self):
        assert CacheCLI(self.identity).key(record_id="7") == "tc_default_user_info_7"

    def test_tag_required(self):
        with pytest.raises(ValueError):
            CacheCLI(self.identity).key()

    @pytest.mark.asyncio
    async def test_version_and_bump(self):
        kv = InMemoryKVCache()
        await kv.connect()
        cli = CacheCLI(self.identity)

        assert await cli.version(kv) == 0
        assert await cli.bump(kv) == 1
        assert await cli.version(kv) == 1


class TestMain:
    """Tests for the argparse entry point."""

    def test_key_command(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--table", "user", "key", "--tag", "gcc", "--args", '[{"status": 1}]'])

        assert exc_info.value.code == 0
        expected = query_key(EntityIdentity("tc", "default", "user"), "gcc", fingerprint({"status": 1}))
        assert capsys.readouterr().out.strip() == expected

    def test_key_command_rejects_bad_json(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--table", "user", "key", "--tag", "gcc", "--args", "{oops"])

        assert exc_info.value.code == 2
        assert "not valid JSON" in capsys.readouterr().err

    def test_bump_command_memory_backend(self, capsys, monkeypatch):
        monkeypatch.setenv("CACHE_BACKEND", "memory")

        with pytest.raises(SystemExit) as exc_info:
            main(["--db", "shop", "--table", "user", "bump"])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.strip() == "tc_shop_user_ver = 1"
