"""Tests for the didjose CLI."""

import io
import json
import os

import pytest

from didjose.cli.jose_cli import main
from didjose.config import get_settings
from didjose.core.jwe import DirectEncrypter, X25519Encrypter, create_jwe

TOKEN = "eyJhbGciOiJFUzI1NksifQ.eyJpc3MiOiJkaWQ6ZXhhbXBsZTphbGljZSJ9.c2ln"


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestDecode:
    """Tests for the decode command."""

    def test_decode_json(self, capsys):
        assert main(["--format", "json", "decode", TOKEN]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out == {"header": {"alg": "ES256K"}, "payload": {"iss": "did:example:alice"}}

    def test_decode_text(self, capsys):
        assert main(["--no-color", "decode", TOKEN]) == 0
        out = capsys.readouterr().out
        assert "header" in out
        assert "did:example:alice" in out

    def test_malformed_token(self, capsys):
        assert main(["decode", "not.a.jwt.at.all"]) == 2
        assert "invalid_jwt" in capsys.readouterr().err


class TestInspectJWE:
    """Tests for the inspect-jwe command."""

    @pytest.mark.asyncio
    async def test_inspect_file(self, tmp_path, capsys, x25519_bob):
        jwe = await create_jwe(b"secret", [X25519Encrypter(x25519_bob.public_key, kid="bob")])
        path = tmp_path / "message.jwe"
        path.write_text(jwe.to_json())

        assert main(["--format", "json", "inspect-jwe", str(path)]) == 0
        captured = capsys.readouterr()
        out = json.loads(captured.out)
        assert out["protected"] == {"enc": "XC20P"}
        assert out["recipients"][0]["kid"] == "bob"
        assert "secret" not in captured.out

    @pytest.mark.asyncio
    async def test_inspect_stdin_compact(self, monkeypatch, capsys):
        jwe = await create_jwe(b"secret", [DirectEncrypter(os.urandom(32))])
        monkeypatch.setattr("sys.stdin", io.StringIO(jwe.to_compact()))

        assert main(["--format", "json", "inspect-jwe", "-"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["protected"]["alg"] == "dir"
        assert out["recipients"] == []

    def test_missing_file(self, tmp_path):
        assert main(["inspect-jwe", str(tmp_path / "missing.jwe")]) == 2

    def test_malformed_envelope(self, tmp_path, capsys):
        path = tmp_path / "bad.jwe"
        path.write_text('{"protected": "e30"}')
        assert main(["inspect-jwe", str(path)]) == 2
        assert "invalid_jwe" in capsys.readouterr().err


class TestMisc:
    """Tests for algorithms listing and argument handling."""

    def test_algorithms(self, capsys):
        assert main(["--format", "json", "algorithms"]) == 0
        names = json.loads(capsys.readouterr().out)
        assert {"ES256", "ES256K", "ES256K-R", "EdDSA", "Ed25519"} <= set(names)

    def test_missing_argument(self):
        assert main(["decode"]) == 3

    def test_unknown_command(self):
        assert main(["sign"]) == 3

    def test_no_command(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out

    def test_invalid_log_level(self, monkeypatch, fresh_settings, capsys):
        monkeypatch.setenv("DIDJOSE_LOG_LEVEL", "loud")
        assert main(["algorithms"]) == 3
        assert "Invalid configuration" in capsys.readouterr().err

    def test_log_level_case_insensitive(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("DIDJOSE_LOG_LEVEL", "debug")
        assert main(["algorithms"]) == 0
        assert get_settings().log_level == "DEBUG"
