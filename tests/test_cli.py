"""
CLI tests, driven through click's CliRunner.

The happy path mirrors real use: keygen, compile a vesting file into a
bundle, verify it offline, then dry-run settlement against a journal.
"""

import json

import pytest
from click.testing import CliRunner

from capsulecoin.cli import cli
from capsulecoin.core.canonical import hash_for_claim
from capsulecoin.core.crypto import ClaimKeyManager

from conftest import DESTINATION, HARDHAT_ACCOUNT_0, HARDHAT_ACCOUNT_1, HARDHAT_MNEMONIC


TIMESTAMP = 1_700_000_000


@pytest.fixture
def runner(monkeypatch):
    for name in ("CAPSULE_CONFIG", "CAPSULE_MNEMONIC", "CAPSULE_JOURNAL_PATH",
                 "CAPSULE_DECIMALS", "CAPSULE_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return CliRunner()


@pytest.fixture
def key_file(tmp_path):
    path = tmp_path / "issuer.key"
    ClaimKeyManager.from_private_key("0x" + "11" * 32).save(path)
    return path


@pytest.fixture
def vesting_file(tmp_path):
    path = tmp_path / "vesting.json"
    path.write_text(json.dumps({
        DESTINATION: {
            "vesting1Epoch": TIMESTAMP,        "vesting1price": 1000,
            "vesting2Epoch": TIMESTAMP + 3600, "vesting2price": 2500,
        },
    }), encoding="utf-8")
    return path


def _compile(runner, tmp_path, key_file, vesting_file, name="claims.json"):
    out = tmp_path / name
    result = runner.invoke(cli, [
        "claims", "--key-file", str(key_file), "--json", str(vesting_file),
        "--nonce", "1", "--block-number", "1000", "--block-timestamp", str(TIMESTAMP),
        "--output", str(out),
    ])
    assert result.exit_code == 0, result.output
    return out


class TestKeys:

    def test_keygen_writes_loadable_key(self, runner, tmp_path):
        path = tmp_path / "new.key"
        result = runner.invoke(cli, ["keygen", str(path)])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == ClaimKeyManager.from_file(path).address

    def test_keygen_refuses_overwrite(self, runner, key_file):
        result = runner.invoke(cli, ["keygen", str(key_file)])
        assert result.exit_code == 1
        assert "already exists" in result.output
        forced = runner.invoke(cli, ["keygen", str(key_file), "--force"])
        assert forced.exit_code == 0

    def test_accounts_match_hardhat_derivation(self, runner):
        result = runner.invoke(cli, ["accounts", "--mnemonic", HARDHAT_MNEMONIC, "--count", "2"])
        assert result.exit_code == 0, result.output
        assert result.output.split() == [HARDHAT_ACCOUNT_0, HARDHAT_ACCOUNT_1]


class TestHash:

    def test_prints_claim_digest(self, runner):
        result = runner.invoke(cli, ["hash", HARDHAT_ACCOUNT_0, DESTINATION, "10000", "1200", "1"])
        assert result.exit_code == 0, result.output
        expected = hash_for_claim(HARDHAT_ACCOUNT_0, DESTINATION, 10_000, 1_200, 1)
        assert result.output.strip() == "0x" + expected.hex()

    def test_bad_address(self, runner):
        result = runner.invoke(cli, ["hash", "0x1234", DESTINATION, "1", "1", "1"])
        assert result.exit_code == 1


class TestClaims:

    def test_stdout_bundle(self, runner, key_file, vesting_file):
        result = runner.invoke(cli, [
            "claims", "--key-file", str(key_file), "--json", str(vesting_file),
            "--nonce", "5", "--block-number", "1000", "--block-timestamp", str(TIMESTAMP),
        ])
        assert result.exit_code == 0, result.output
        bundle = json.loads(result.output)
        claims = bundle[DESTINATION]
        assert [c["nonce"] for c in claims] == [5, 6]
        assert [c["validity"] for c in claims] == [1000, 1120]
        assert [c["amount"] for c in claims] == [str(1000 * 10**18), str(2500 * 10**18)]

    def test_decimals_flag(self, runner, tmp_path, key_file, vesting_file):
        out = tmp_path / "six.json"
        result = runner.invoke(cli, [
            "claims", "--key-file", str(key_file), "--json", str(vesting_file),
            "--nonce", "1", "--block-number", "0", "--block-timestamp", str(TIMESTAMP),
            "--decimals", "6", "--output", str(out),
        ])
        assert result.exit_code == 0, result.output
        claims = json.loads(out.read_text(encoding="utf-8"))[DESTINATION]
        assert claims[0]["amount"] == str(1000 * 10**6)

    def test_mnemonic_with_addr(self, runner, tmp_path, vesting_file):
        out = tmp_path / "claims.json"
        result = runner.invoke(cli, [
            "claims", "--mnemonic", HARDHAT_MNEMONIC, "--addr", HARDHAT_ACCOUNT_1,
            "--accounts", "3", "--json", str(vesting_file), "--nonce", "1",
            "--block-number", "1000", "--block-timestamp", str(TIMESTAMP),
            "--output", str(out),
        ])
        assert result.exit_code == 0, result.output
        claims = json.loads(out.read_text(encoding="utf-8"))[DESTINATION]
        assert {c["from"] for c in claims} == {HARDHAT_ACCOUNT_1}

    def test_unknown_addr_fails(self, runner, vesting_file):
        result = runner.invoke(cli, [
            "claims", "--mnemonic", HARDHAT_MNEMONIC, "--addr", DESTINATION,
            "--accounts", "2", "--json", str(vesting_file), "--nonce", "1",
            "--block-number", "1000",
        ])
        assert result.exit_code == 1

    def test_key_file_addr_mismatch(self, runner, key_file, vesting_file):
        result = runner.invoke(cli, [
            "claims", "--key-file", str(key_file), "--addr", HARDHAT_ACCOUNT_0,
            "--json", str(vesting_file), "--nonce", "1", "--block-number", "1000",
        ])
        assert result.exit_code == 1

    def test_signer_required(self, runner, vesting_file):
        result = runner.invoke(cli, [
            "claims", "--json", str(vesting_file), "--nonce", "1", "--block-number", "1000",
        ])
        assert result.exit_code == 2


class TestVerify:

    def test_valid_bundle(self, runner, tmp_path, key_file, vesting_file):
        bundle = _compile(runner, tmp_path, key_file, vesting_file)
        result = runner.invoke(cli, ["verify", str(bundle), "--format", "json"])
        assert result.exit_code == 0, result.output
        report = json.loads(result.output)
        assert report["status"] == "valid"
        assert report["valid_proofs"] == 2

    def test_tampered_amount_is_invalid(self, runner, tmp_path, key_file, vesting_file):
        bundle = _compile(runner, tmp_path, key_file, vesting_file)
        data = json.loads(bundle.read_text(encoding="utf-8"))
        data[DESTINATION][0]["amount"] = str(10**30)
        bundle.write_text(json.dumps(data), encoding="utf-8")

        result = runner.invoke(cli, ["verify", str(bundle), "--format", "json"])
        assert result.exit_code == 1
        report = json.loads(result.output)
        assert report["invalid_proofs"] == 1
        assert [c["valid"] for c in report["claims"]] == [False, True]

    def test_human_output(self, runner, tmp_path, key_file, vesting_file):
        bundle = _compile(runner, tmp_path, key_file, vesting_file)
        result = runner.invoke(cli, ["verify", str(bundle), "--no-color"])
        assert result.exit_code == 0
        assert "All proofs valid" in result.output

    def test_quiet_uses_exit_code_only(self, runner, tmp_path, key_file, vesting_file):
        bundle = _compile(runner, tmp_path, key_file, vesting_file)
        result = runner.invoke(cli, ["verify", str(bundle), "--quiet"])
        assert result.exit_code == 0
        assert result.output == ""

    def test_missing_bundle(self, runner, tmp_path):
        result = runner.invoke(cli, ["verify", str(tmp_path / "nope.json")])
        assert result.exit_code == 2

    def test_malformed_bundle(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        result = runner.invoke(cli, ["verify", str(path)])
        assert result.exit_code == 2

    def test_non_utf8_bundle(self, runner, tmp_path):
        path = tmp_path / "binary.json"
        path.write_bytes(b"\xff\xfe{}")
        result = runner.invoke(cli, ["verify", str(path), "--format", "json"])
        assert result.exit_code == 2
        assert json.loads(result.output)["status"] == "error"

    def test_human_output_reports_failures(self, runner, tmp_path, key_file, vesting_file):
        bundle = _compile(runner, tmp_path, key_file, vesting_file)
        data = json.loads(bundle.read_text(encoding="utf-8"))
        data[DESTINATION][1]["nonce"] = data[DESTINATION][0]["nonce"]
        bundle.write_text(json.dumps(data), encoding="utf-8")

        result = runner.invoke(cli, ["verify", str(bundle), "--no-color"])
        assert result.exit_code == 1
        assert "1 invalid proof(s), 1 duplicate nonce(s)" in result.output


class TestSettle:

    def test_settle_then_replay_from_journal(self, runner, tmp_path, key_file, vesting_file):
        bundle = _compile(runner, tmp_path, key_file, vesting_file)
        journal = tmp_path / "replay.jsonl"
        args = ["settle", str(bundle), "--height", "1120",
                "--journal", str(journal), "--format", "json"]

        first = runner.invoke(cli, args)
        assert first.exit_code == 0, first.output
        report = json.loads(first.output)
        assert report["status"] == "settled"
        assert report["stats"]["consumed_nonces"] == 2
        assert report["issuer_balance"] == str((2_500_000_000 - 3500) * 10**18)

        second = runner.invoke(cli, args)
        assert second.exit_code == 1
        states = [c["state"] for c in json.loads(second.output)["claims"]]
        assert states == ["REJECTED_ALREADY_USED", "REJECTED_ALREADY_USED"]

    def test_early_claims_rejected(self, runner, tmp_path, key_file, vesting_file):
        bundle = _compile(runner, tmp_path, key_file, vesting_file)
        result = runner.invoke(cli, ["settle", str(bundle), "--height", "1000", "--format", "json"])
        assert result.exit_code == 1
        states = [c["state"] for c in json.loads(result.output)["claims"]]
        assert states == ["CONSUMED", "REJECTED_TOO_EARLY"]

    def test_missing_bundle(self, runner, tmp_path):
        result = runner.invoke(cli, ["settle", str(tmp_path / "nope.json"), "--height", "1"])
        assert result.exit_code == 2

    def test_non_utf8_bundle(self, runner, tmp_path):
        path = tmp_path / "binary.json"
        path.write_bytes(b"\xff\xfe{}")
        result = runner.invoke(cli, ["settle", str(path), "--height", "1"])
        assert result.exit_code == 2

    def test_zero_address_issuer_cannot_be_deployed(self, runner, tmp_path):
        path = tmp_path / "zero.json"
        path.write_text(json.dumps({
            DESTINATION: [{
                "proof":    "0x" + "11" * 65,
                "from":     "0x" + "0" * 40,
                "to":       DESTINATION,
                "amount":   "1",
                "validity": 0,
                "nonce":    1,
            }],
        }), encoding="utf-8")
        result = runner.invoke(cli, ["settle", str(path), "--height", "1", "--format", "json"])
        assert result.exit_code == 2
        assert json.loads(result.output)["status"] == "error"

    def test_human_summary(self, runner, tmp_path, key_file, vesting_file):
        bundle = _compile(runner, tmp_path, key_file, vesting_file)
        result = runner.invoke(cli, ["settle", str(bundle), "--height", "1000", "--no-color"])
        assert result.exit_code == 1
        assert "REJECTED_TOO_EARLY" in result.output
        assert "1 of 2 claim(s) rejected" in result.output


class TestConfig:

    def test_config_file_sets_decimals(self, runner, tmp_path, key_file, vesting_file):
        config = tmp_path / "capsule.yaml"
        config.write_text("decimals: 0\n", encoding="utf-8")
        result = runner.invoke(cli, [
            "--config", str(config),
            "claims", "--key-file", str(key_file), "--json", str(vesting_file),
            "--nonce", "1", "--block-number", "1000", "--block-timestamp", str(TIMESTAMP),
        ])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)[DESTINATION][0]["amount"] == "1000"

    def test_bad_config_file(self, runner, tmp_path):
        config = tmp_path / "capsule.yaml"
        config.write_text("nonsense: true\n", encoding="utf-8")
        result = runner.invoke(cli, ["--config", str(config), "hash",
                                     HARDHAT_ACCOUNT_0, DESTINATION, "1", "1", "1"])
        assert result.exit_code == 2

    @pytest.mark.parametrize("content", ["decimals: 77\n", "log_level: 10\n"])
    def test_config_values_rejected_before_commands_run(
        self, runner, tmp_path, key_file, vesting_file, content
    ):
        config = tmp_path / "capsule.yaml"
        config.write_text(content, encoding="utf-8")
        bundle = _compile(runner, tmp_path, key_file, vesting_file)
        result = runner.invoke(cli, ["--config", str(config), "settle", str(bundle),
                                     "--height", "1120"])
        assert result.exit_code == 2
        assert result.exception is None or isinstance(result.exception, SystemExit)
