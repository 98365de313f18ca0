from __future__ import annotations

import json

import pytest
import yaml
from fastapi.testclient import TestClient
from pydantic import ValidationError
from typer.testing import CliRunner

from custody_staking.cli import app as cli_app
from custody_staking.config import DeploymentConfig
from custody_staking.deployment import CustodyDeployment
from custody_staking.errors import InsufficientPoolBalance, StaleEpoch
from custody_staking.logging_utils import AuditTrail
from custody_staking.process import create_app
from custody_staking.signers import LocalAttestorSigner, sort_signers
from custody_staking.simulation import run_lifecycle_simulation

from staking_constants import ADMIN, CHAIN_ID, CONTRACT, POOL, RELAYER, STAKER, TOKEN, UNIT


def _write_config(tmp_path, **overrides):
    payload = {
        "chain_id": CHAIN_ID,
        "contract_address": CONTRACT.lower(),
        "pool_address": POOL,
        "token_address": TOKEN,
        "admin_address": ADMIN,
        "unbonding_period_seconds": 3_600,
    }
    payload.update(overrides)
    path = tmp_path / "custody.yaml"
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path


def test_config_loads_yaml_and_environment_overrides(tmp_path):
    path = _write_config(tmp_path, log_file="logs/audit.jsonl")
    config = DeploymentConfig.load(path, env={"CUSTODY_MINIMUM_STAKE_TOKENS": "5", "CUSTODY_CHAIN_ID": "10"})
    assert config.contract_address == CONTRACT
    assert config.chain_id == 10
    assert config.minimum_stake == 5 * UNIT
    assert config.unbonding_period_seconds == 3_600
    assert config.start_paused is True
    assert config.resolved_log_file() == (tmp_path / "logs" / "audit.jsonl").resolve()


def test_config_rejects_inconsistent_values():
    base = {
        "chain_id": CHAIN_ID,
        "contract_address": CONTRACT,
        "pool_address": POOL,
        "token_address": TOKEN,
        "admin_address": ADMIN,
    }
    with pytest.raises(ValidationError):
        DeploymentConfig.from_mapping({**base, "attestors": [STAKER]}, env={})
    with pytest.raises(ValidationError):
        DeploymentConfig.from_mapping({**base, "threshold": 1}, env={})
    with pytest.raises(ValidationError):
        DeploymentConfig.from_mapping({**base, "pool_address": CONTRACT}, env={})
    with pytest.raises(ValidationError):
        DeploymentConfig.from_mapping({**base, "admin_address": "0x" + "00" * 20}, env={})


def test_deployment_registers_configured_attestors(config):
    signers = sort_signers(LocalAttestorSigner.from_seed(f"cfg-{index}") for index in range(2))
    configured = config.model_copy(update={"attestors": [signer.address for signer in signers], "threshold": 2})
    deployment = CustodyDeployment(configured)
    assert deployment.attestors == tuple(signer.address for signer in signers)
    assert deployment.threshold == 2
    assert deployment.pool.is_whitelisted(CONTRACT)
    assert deployment.health()["status"] == "degraded"


def test_metrics_count_transitions_and_rejections(live, claimed, bundle_for):
    claimed()
    bundle = bundle_for()
    live.fulfill_unstake(RELAYER, STAKER, bundle.amount, 1, bundle.proof, bundle.v, bundle.r, bundle.s)
    with pytest.raises(StaleEpoch):
        live.fulfill_unstake(RELAYER, STAKER, bundle.amount, 1, bundle.proof, bundle.v, bundle.r, bundle.s)
    text = live.metrics().decode()
    assert 'custody_transitions_total{transition="fulfill_unstake"} 1.0' in text
    assert 'custody_rejections_total{reason="stale_epoch"} 1.0' in text
    assert "custody_released_tokens_total 1e+21" in text
    snapshot = live.snapshot()
    assert snapshot["stakers"][STAKER]["state"] == "UNSTAKED"
    assert snapshot["stakers"][STAKER]["lastFulfilledEpoch"] == 1
    assert snapshot["withdrawers"] == [CONTRACT]


def test_readiness_tracks_attestor_registration(deployment):
    client = TestClient(create_app(deployment))
    assert client.get("/readyz").status_code == 503
    health = client.get("/healthz").json()
    assert health["paused"] is True and health["attestorsReady"] is False


def test_api_relays_fulfillment(live, claimed, bundle_for):
    client = TestClient(create_app(live))
    claimed()
    assert client.get("/readyz").status_code == 200
    assert client.get("/healthz").json()["status"] == "ok"
    staker = client.get(f"/v1/stakers/{STAKER.lower()}").json()
    assert staker["address"] == STAKER
    assert staker["state"] == "UNSTAKE_CLAIMED"
    assert staker["unbondAvailableAt"] is None
    assert client.get("/v1/pool").json() == {"address": POOL, "balance": str(1_000 * UNIT)}
    assert client.get("/v1/attestors").json()["threshold"] == 2

    payload = {"relayer": RELAYER, **bundle_for().to_payload()}
    response = client.post("/v1/fulfill", json=payload)
    assert response.status_code == 200
    assert response.json() == {"claimant": STAKER, "amount": str(1_000 * UNIT), "epoch": 1, "state": "UNSTAKED"}

    replay = client.post("/v1/fulfill", json=payload)
    assert replay.status_code == 409
    assert replay.json()["detail"]["code"] == "STALE_EPOCH"
    assert "custody_transitions_total" in client.get("/metrics").text


def test_api_maps_error_categories(live, claimed, bundle_for, signers):
    client = TestClient(create_app(live))
    claimed()
    weak = {"relayer": RELAYER, **bundle_for(cosigners=signers[:1]).to_payload()}
    response = client.post("/v1/fulfill", json=weak)
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "INVALID_SIGNATURE"

    zero = {"relayer": RELAYER, **bundle_for().to_payload(), "amount": "0"}
    assert client.post("/v1/fulfill", json=zero).status_code == 400

    live.pause(ADMIN)
    paused = client.post("/v1/fulfill", json={"relayer": RELAYER, **bundle_for().to_payload()})
    assert paused.status_code == 409
    assert paused.json()["detail"]["code"] == "ENFORCED_PAUSE"
    assert client.get("/v1/stakers/not-an-address").status_code == 400


def test_audit_trail_records_committed_events(config, tmp_path):
    audit = AuditTrail(tmp_path / "audit" / "custody.jsonl")
    summary = run_lifecycle_simulation(config, stake_tokens=10, audit=audit)
    events = [entry for entry in audit.entries() if entry["kind"] == "event"]
    assert [entry["type"] for entry in events] == [event["type"] for event in summary.events]
    assert [entry["sequence"] for entry in events] == sorted(entry["sequence"] for entry in events)
    fulfilled = events[-1]
    assert fulfilled["type"] == "UnstakeFulfilled"
    assert fulfilled["payload"]["amount"] == 10 * UNIT + 10 * UNIT * 250 // 10_000
    assert isinstance(fulfilled["timestamp"], int)


def test_audit_trail_skips_rolled_back_operations(live, claimed, bundle_for, tmp_path):
    audit = AuditTrail(tmp_path / "custody.jsonl").attach(live.bus)
    claimed()
    bundle = bundle_for(amount=5_000 * UNIT)
    with pytest.raises(InsufficientPoolBalance):
        live.fulfill_unstake(RELAYER, STAKER, bundle.amount, 1, bundle.proof, bundle.v, bundle.r, bundle.s)
    types = [entry["type"] for entry in audit.entries()]
    assert types == ["Staked", "UnstakeInitiated", "UnstakeClaimed"]


def _json_from(output: str):
    return json.loads(output[output.index("{") :])


def test_cli_simulate_reports_full_cycle(tmp_path):
    path = _write_config(tmp_path)
    runner = CliRunner()
    result = runner.invoke(cli_app, ["simulate", "--config", str(path), "--json", "--stake", "100"])
    assert result.exit_code == 0, result.output
    summary = _json_from(result.stdout)
    assert summary["finalState"] == "UNSTAKED"
    assert summary["staked"] == str(100 * UNIT)
    assert summary["released"] == str(1025 * UNIT // 10)
    assert summary["poolBalanceAfterRelease"] == "0"
    assert summary["events"][-1]["type"] == "UnstakeFulfilled"


def test_cli_simulate_fails_below_threshold(tmp_path):
    path = _write_config(tmp_path)
    result = CliRunner().invoke(cli_app, ["simulate", "--config", str(path), "--signing", "1"])
    assert result.exit_code == 2


def test_cli_inspect_config(tmp_path):
    path = _write_config(tmp_path)
    result = CliRunner().invoke(cli_app, ["inspect-config", "--config", str(path)])
    assert result.exit_code == 0, result.output
    payload = _json_from(result.stdout)
    assert payload["contract_address"] == CONTRACT
    assert payload["minimum_stake"] == str(UNIT)

    broken = tmp_path / "broken.yaml"
    broken.write_text("chain_id: 0\n", encoding="utf-8")
    assert CliRunner().invoke(cli_app, ["inspect-config", "--config", str(broken)]).exit_code == 2


def test_cli_simulate_writes_audit_trail(tmp_path):
    path = _write_config(tmp_path)
    trail = tmp_path / "logs" / "trail.jsonl"
    result = CliRunner().invoke(
        cli_app, ["simulate", "--config", str(path), "--json", "--log-file", str(trail)]
    )
    assert result.exit_code == 0, result.output
    entries = AuditTrail(trail).entries()
    event_types = [entry["type"] for entry in entries if entry["kind"] == "event"]
    assert event_types[-2:] == ["Withdrawn", "UnstakeFulfilled"]
    logs = [entry for entry in entries if entry["kind"] == "log"]
    assert any(entry.get("event") == "unstake_fulfilled" for entry in logs)
