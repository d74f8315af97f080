import json

import pytest

from casper_deploy.errors import (
    ConfigError,
    ConnectivityError,
    InvalidArgumentError,
    MissingNamedKeyError,
    UnknownEntryPointError,
)
from casper_deploy.orchestrator import run_invocation, run_query
from casper_deploy.registry import bundled_profile

from .conftest import ACCOUNT_HASH


async def _no_sleep(_):
    return None


def _flag(command, name):
    return command[command.index(name) + 1]


@pytest.mark.asyncio
async def test_init_end_to_end(fake_node, fake_client, make_config):
    fake_node.serve_deploy_target(state_root_hash="abc123", package_hash="deadbeef")
    client = fake_client()
    config = make_config(fake_node.url, client=client)

    outcome = await run_invocation(config, bundled_profile("asset_forwarder"), "init", sleep=_no_sleep)

    assert outcome.state_root_hash == "abc123"
    assert outcome.package_hash == "deadbeef"
    assert outcome.arguments == []
    assert fake_node.methods() == ["chain_get_state_root_hash", "state_get_item"]
    assert fake_node.calls[1][1] == {
        "state_root_hash": "abc123",
        "key": ACCOUNT_HASH,
        "path": ["contract_hash_asset_forwarder"],
    }

    [argv] = client.invocations()
    assert _flag(argv, "--session-package-hash") == "deadbeef"
    assert _flag(argv, "--session-entry-point") == "init"
    assert json.loads(_flag(argv, "--session-args-json")) == []
    assert _flag(argv, "--payment-amount") == "1000"
    assert outcome.result.deploy_hash
    assert outcome.status is None


@pytest.mark.asyncio
async def test_unknown_entry_point_aborts_before_submit(fake_node, fake_client, make_config):
    fake_node.serve_deploy_target()
    client = fake_client()
    config = make_config(fake_node.url, client=client)

    with pytest.raises(UnknownEntryPointError):
        await run_invocation(config, bundled_profile("asset_forwarder"), "bogus_entry", sleep=_no_sleep)

    assert len(fake_node.calls) <= 2
    assert client.invocations() == []


@pytest.mark.asyncio
async def test_overrides_and_payment_reach_the_client(fake_node, fake_client, make_config):
    fake_node.serve_deploy_target()
    client = fake_client()
    config = make_config(fake_node.url, client=client)

    await run_invocation(
        config, bundled_profile("gateway"), "set_bridge_fees",
        overrides={"new_fees": "12"}, payment_amount=5000000, sleep=_no_sleep,
    )

    [argv] = client.invocations()
    assert json.loads(_flag(argv, "--session-args-json")) == [{"name": "new_fees", "type": "U128", "value": "12"}]
    assert _flag(argv, "--payment-amount") == "5000000"


@pytest.mark.asyncio
async def test_two_identical_invocations_give_two_deploys(fake_node, fake_client, make_config):
    fake_node.serve_deploy_target()
    client = fake_client()
    config = make_config(fake_node.url, client=client)
    profile = bundled_profile("batch_handler")

    first = await run_invocation(config, profile, "handle_message", sleep=_no_sleep)
    second = await run_invocation(config, profile, "handle_message", sleep=_no_sleep)

    assert first.result.deploy_hash != second.result.deploy_hash
    # every invocation re-fetches the state root
    assert fake_node.methods().count("chain_get_state_root_hash") == 2


@pytest.mark.asyncio
async def test_missing_named_key_aborts(fake_node, fake_client, make_config):
    fake_node.serve_deploy_target()
    fake_node.responses["state_get_item"] = {"error": {"code": -32003, "message": "ValueNotFound"}}
    client = fake_client()
    config = make_config(fake_node.url, client=client)

    with pytest.raises(MissingNamedKeyError):
        await run_invocation(config, bundled_profile("gateway"), "init", sleep=_no_sleep)
    assert client.invocations() == []


@pytest.mark.asyncio
async def test_unreachable_node_aborts(fake_client, make_config):
    client = fake_client()
    config = make_config("http://127.0.0.1:1", client=client, rpc_timeout=2.0)
    with pytest.raises(ConnectivityError):
        await run_invocation(config, bundled_profile("gateway"), "init", sleep=_no_sleep)
    assert client.invocations() == []


@pytest.mark.asyncio
async def test_deploy_settings_checked_before_network(fake_node, make_config):
    config = make_config(fake_node.url, chain_name=None)
    with pytest.raises(ConfigError):
        await run_invocation(config, bundled_profile("gateway"), "init", sleep=_no_sleep)
    assert fake_node.calls == []


@pytest.mark.asyncio
async def test_dry_run_does_not_submit(fake_node, fake_client, make_config):
    fake_node.serve_deploy_target(package_hash="deadbeef")
    client = fake_client()
    config = make_config(fake_node.url, client=client)

    outcome = await run_invocation(config, bundled_profile("gateway"), "deposit", dry_run=True, sleep=_no_sleep)

    assert outcome.result is None
    assert _flag(outcome.command, "--session-package-hash") == "deadbeef"
    assert client.invocations() == []


@pytest.mark.asyncio
async def test_dry_run_without_deploy_settings(fake_node, make_config):
    fake_node.serve_deploy_target()
    config = make_config(fake_node.url, chain_name=None, secret_key_path=None)
    outcome = await run_invocation(config, bundled_profile("gateway"), "init", dry_run=True, sleep=_no_sleep)
    assert outcome.package_hash == "deadbeef"
    assert outcome.command == []


@pytest.mark.asyncio
async def test_wait_reports_execution(fake_node, fake_client, make_config):
    fake_node.serve_deploy_target()
    fake_node.responses["info_get_deploy"] = lambda params: {
        "result": {"execution_info": {"execution_result": {"Version2": {"error_message": None}}}}
    }
    config = make_config(fake_node.url, client=fake_client())

    outcome = await run_invocation(config, bundled_profile("gateway"), "init", wait=True, sleep=_no_sleep)

    assert outcome.status.executed and outcome.status.success
    assert fake_node.calls[-1] == ("info_get_deploy", {"deploy_hash": outcome.result.deploy_hash})


@pytest.mark.asyncio
async def test_run_query_splits_path(fake_node, make_config):
    fake_node.serve_deploy_target()
    stored_value = await run_query(make_config(fake_node.url), "asset_forwarder_contract_hash/fee_config")
    assert "AddressableEntity" in stored_value
    assert fake_node.calls[1][1]["path"] == ["asset_forwarder_contract_hash", "fee_config"]
    assert fake_node.calls[1][1]["key"] == ACCOUNT_HASH


@pytest.mark.asyncio
@pytest.mark.parametrize("payment_amount", [0, -5])
async def test_non_positive_payment_rejected_before_the_node(fake_node, fake_client, make_config, payment_amount):
    fake_node.serve_deploy_target()
    client = fake_client()
    config = make_config(fake_node.url, client=client)

    with pytest.raises(InvalidArgumentError, match="positive"):
        await run_invocation(config, bundled_profile("gateway"), "init", payment_amount=payment_amount, sleep=_no_sleep)

    assert fake_node.calls == []
    assert client.invocations() == []
