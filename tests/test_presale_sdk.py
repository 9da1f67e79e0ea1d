"""
Lifecycle tests for PresaleSDK against the in-memory chain.
"""

import asyncio

import pytest
from eth_abi import encode as abi_encode

from errors import ErrorKind, PresaleError
from fake_chain import ADMIN, ALICE, BOB, CHARLIE, PRESALE_ADDRESS, TOKEN, TOKEN_ADDRESS, USDC, make_deployment_config
from models import DeploymentResult, PresaleStatus
from presale_utils import MAX_UINT256, progress_percentage


def run(coro):
    return asyncio.run(coro)


async def mined(coro):
    pending = await coro
    return await pending.wait()


async def fund_and_contribute(sdk, chain, signer, presale_id, amount):
    chain.mint_usdc(signer.address, amount)
    await mined(sdk.approve_usdc(signer, amount))
    return await mined(sdk.contribute(signer, presale_id, amount))


def raises_code(code, coro):
    with pytest.raises(PresaleError) as exc:
        run(coro)
    assert exc.value.code == code
    return exc.value


# ---------- Contributions ----------

def test_contributions_and_withdrawal_track_progress(allocated_sdk, allocated_chain, alice, bob, charlie):
    presale_id = allocated_chain.add_presale(target_usdc=10_000 * USDC, min_usdc=5_000 * USDC)

    async def scenario():
        await fund_and_contribute(allocated_sdk, allocated_chain, alice, presale_id, 4_500 * USDC)
        await fund_and_contribute(allocated_sdk, allocated_chain, bob, presale_id, 3_000 * USDC)
        await fund_and_contribute(allocated_sdk, allocated_chain, charlie, presale_id, 2_500 * USDC)
        receipt = await mined(allocated_sdk.withdraw(charlie, presale_id, 500 * USDC))
        assert receipt.success
        return await allocated_sdk.get_presale(presale_id), await allocated_sdk.get_contribution(presale_id, CHARLIE)

    presale, charlie_contribution = run(scenario())
    assert presale.total_contributions == 9_500 * USDC
    assert progress_percentage(presale) == 95
    assert charlie_contribution == 2_000 * USDC
    assert allocated_chain.usdc_balances[CHARLIE] == 500 * USDC


def test_contribute_after_end_fails_without_sending(allocated_sdk, allocated_chain, alice, bob):
    presale_id = allocated_chain.add_presale()
    run(fund_and_contribute(allocated_sdk, allocated_chain, alice, presale_id, 6_000 * USDC))
    allocated_chain.end_presale(presale_id)

    allocated_chain.mint_usdc(BOB, 100 * USDC)
    sent_before = len(allocated_chain.sent)
    error = raises_code("PRESALE_NOT_ACTIVE", allocated_sdk.contribute(bob, presale_id, 100 * USDC, auto_approve=True))
    assert error.kind == ErrorKind.PRECONDITION
    assert error.status == "PendingAllocation"
    assert "PendingAllocation" in error.message
    assert len(allocated_chain.sent) == sent_before


def test_contribute_below_minimum_goes_to_failed_and_refunds(allocated_sdk, allocated_chain, alice):
    presale_id = allocated_chain.add_presale(min_usdc=5_000 * USDC)
    run(fund_and_contribute(allocated_sdk, allocated_chain, alice, presale_id, 1_000 * USDC))
    allocated_chain.end_presale(presale_id)

    info = run(allocated_sdk.get_presale_info(presale_id))
    assert info.presale.status == PresaleStatus.FAILED

    run(mined(allocated_sdk.withdraw(alice, presale_id, 1_000 * USDC)))
    assert allocated_chain.usdc_balances[ALICE] == 1_000 * USDC


def test_contribute_auto_approve_sends_two_transactions(allocated_sdk, allocated_chain, alice):
    presale_id = allocated_chain.add_presale()
    allocated_chain.mint_usdc(ALICE, 1_000 * USDC)

    receipt = run(mined(allocated_sdk.contribute(alice, presale_id, 100 * USDC, auto_approve=True)))
    assert receipt.success
    assert allocated_chain.functions_sent() == ["approve", "contribute"]
    assert allocated_chain.sent[0]["args"] == (PRESALE_ADDRESS, 100 * USDC)


def test_contribute_without_allowance_is_rejected(allocated_sdk, allocated_chain, alice):
    presale_id = allocated_chain.add_presale()
    allocated_chain.mint_usdc(ALICE, 1_000 * USDC)

    error = raises_code("INSUFFICIENT_ALLOWANCE", allocated_sdk.contribute(alice, presale_id, 100 * USDC))
    assert error.required == 100 * USDC
    assert error.available == 0
    assert allocated_chain.sent == []


def test_contribute_checks_balance_first(allocated_sdk, allocated_chain, alice):
    presale_id = allocated_chain.add_presale()
    raises_code("INSUFFICIENT_BALANCE", allocated_sdk.contribute(alice, presale_id, 100 * USDC, auto_approve=True))
    assert allocated_chain.sent == []


def test_reverted_approval_stops_contribution(allocated_sdk, allocated_chain, alice):
    presale_id = allocated_chain.add_presale()
    allocated_chain.mint_usdc(ALICE, 1_000 * USDC)
    allocated_chain.revert_functions.add("approve")

    error = raises_code("TRANSACTION_REVERTED", allocated_sdk.contribute(alice, presale_id, 100 * USDC, auto_approve=True))
    assert error.kind == ErrorKind.CHAIN
    assert allocated_chain.functions_sent() == ["approve"]


def test_over_withdraw_is_rejected(allocated_sdk, allocated_chain, alice):
    presale_id = allocated_chain.add_presale()
    run(fund_and_contribute(allocated_sdk, allocated_chain, alice, presale_id, 500 * USDC))
    sent_before = len(allocated_chain.sent)

    error = raises_code("INSUFFICIENT_CONTRIBUTION", allocated_sdk.withdraw(alice, presale_id, 600 * USDC))
    assert error.kind == ErrorKind.INSUFFICIENT_RESOURCE
    assert len(allocated_chain.sent) == sent_before


def test_withdraw_blocked_while_pending_allocation(allocated_sdk, allocated_chain, alice):
    presale_id = allocated_chain.add_presale(min_usdc=100 * USDC)
    run(fund_and_contribute(allocated_sdk, allocated_chain, alice, presale_id, 500 * USDC))
    allocated_chain.end_presale(presale_id)

    raises_code("PRESALE_NOT_WITHDRAWABLE", allocated_sdk.withdraw(alice, presale_id, 100 * USDC))


def test_writes_need_a_signer(allocated_sdk, allocated_chain):
    presale_id = allocated_chain.add_presale()
    error = raises_code("NO_SIGNER", allocated_sdk.contribute(None, presale_id, 100 * USDC))
    assert error.kind == ErrorKind.CONFIGURATION
    raises_code("NO_SIGNER", allocated_sdk.approve_max_usdc(None))
    assert allocated_chain.sent == []


def test_approve_max(allocated_sdk, allocated_chain, alice):
    run(mined(allocated_sdk.approve_max_usdc(alice)))
    assert run(allocated_sdk.get_usdc_allowance(ALICE)) == MAX_UINT256


# ---------- Allocated variant ----------

def test_allocated_lifecycle(allocated_sdk, allocated_chain, alice, bob, admin):
    presale_id = allocated_chain.add_presale(min_usdc=5_000 * USDC, owner=ADMIN)
    run(fund_and_contribute(allocated_sdk, allocated_chain, alice, presale_id, 5_000 * USDC))
    run(fund_and_contribute(allocated_sdk, allocated_chain, bob, presale_id, 3_000 * USDC))
    allocated_chain.end_presale(presale_id)

    async def allocate():
        await mined(allocated_sdk.set_max_accepted_usdc(admin, presale_id, ALICE, 4_000 * USDC))
        await mined(allocated_sdk.batch_set_max_accepted_usdc(admin, presale_id, [BOB], [3_000 * USDC]))
        return await allocated_sdk.get_max_accepted_usdc(presale_id, ALICE)

    assert run(allocate()) == 4_000 * USDC
    assert run(allocated_sdk.get_total_accepted_usdc(presale_id)) == 7_000 * USDC

    allocated_chain.finish_allocation(presale_id)
    run(mined(allocated_sdk.prepare_for_deployment(admin, presale_id, "0x01")))
    assert allocated_chain.sent[-1]["args"] == (presale_id, b"\x00" * 31 + b"\x01")

    result = run(mined(allocated_sdk.deploy_token(admin, presale_id)))
    assert isinstance(result, DeploymentResult)
    assert result.token_address == TOKEN_ADDRESS
    assert result.token_supply == 1_000_000 * TOKEN

    deploy_tx = allocated_chain.sent[-1]
    assert deploy_tx["target"] == "factory"
    assert deploy_tx["function"] == "deployToken"
    extension = deploy_tx["args"][0][4][0]
    assert extension[0] == PRESALE_ADDRESS
    assert extension[3] == abi_encode(["uint256"], [presale_id])

    user = run(allocated_sdk.get_user_presale_info(presale_id, ALICE))
    assert user.accepted_contribution == 4_000 * USDC
    assert user.refund_amount == 1_000 * USDC
    assert user.token_allocation == 4_000 * 1_000_000 * TOKEN // 7_000

    run(mined(allocated_sdk.claim(alice, presale_id)))
    assert allocated_chain.token_balances[ALICE] == user.token_allocation
    assert allocated_chain.usdc_balances[ALICE] == 1_000 * USDC

    sent_before = len(allocated_chain.sent)
    error = raises_code("ALREADY_CLAIMED", allocated_sdk.claim(alice, presale_id))
    assert error.kind == ErrorKind.ALREADY_SETTLED
    assert len(allocated_chain.sent) == sent_before


def test_token_reads_after_deployment(allocated_sdk, allocated_chain):
    presale_id = allocated_chain.add_presale()
    presale = run(allocated_sdk.get_presale(presale_id))
    assert run(allocated_sdk.get_token_info(presale)) is None
    assert run(allocated_sdk.get_token_balance(presale, ALICE)) is None

    allocated_chain.set_claimable(presale_id, 500 * TOKEN)
    allocated_chain.token_balances[ALICE] = 7 * TOKEN
    presale = run(allocated_sdk.get_presale(presale_id))
    token = run(allocated_sdk.get_token_info(presale))
    assert token.symbol == "TEST"
    assert token.decimals == 18
    assert token.total_supply == 500 * TOKEN
    assert run(allocated_sdk.get_token_balance(presale, ALICE)) == 7 * TOKEN


def test_deploy_requires_ready_status(allocated_sdk, allocated_chain, admin):
    presale_id = allocated_chain.add_presale(status=PresaleStatus.ALLOCATION_SET)
    raises_code("PRESALE_NOT_READY_FOR_DEPLOYMENT", allocated_sdk.deploy_token(admin, presale_id))
    assert allocated_chain.sent == []


def test_set_max_requires_pending_allocation(allocated_sdk, allocated_chain, admin):
    presale_id = allocated_chain.add_presale()
    raises_code("PRESALE_NOT_PENDING_ALLOCATION", allocated_sdk.set_max_accepted_usdc(admin, presale_id, BOB, 1))


def test_batch_length_mismatch_is_checked_before_reading(allocated_sdk, allocated_chain, admin):
    presale_id = allocated_chain.add_presale(status=PresaleStatus.PENDING_ALLOCATION)
    raises_code("LENGTH_MISMATCH", allocated_sdk.batch_set_max_accepted_usdc(admin, presale_id, [ALICE, BOB], [1]))
    assert allocated_chain.reads == []


def test_set_karma_fee(allocated_sdk, allocated_chain, admin):
    presale_id = allocated_chain.add_presale()
    run(mined(allocated_sdk.set_karma_fee_for_presale(admin, presale_id, 250)))
    assert run(allocated_sdk.get_presale(presale_id)).karma_fee_bps == 250
    raises_code("INVALID_FEE", allocated_sdk.set_karma_fee_for_presale(admin, presale_id, 10_001))


def test_claim_usdc_once(allocated_sdk, allocated_chain, admin):
    presale_id = allocated_chain.add_presale(status=PresaleStatus.CLAIMABLE)
    run(mined(allocated_sdk.claim_usdc(admin, presale_id)))
    assert allocated_chain.sent[-1]["args"] == (presale_id, ADMIN)
    raises_code("USDC_ALREADY_CLAIMED", allocated_sdk.claim_usdc(admin, presale_id, recipient=BOB))


def test_create_presale_returns_new_id(allocated_sdk, allocated_chain, admin):
    config = make_deployment_config()
    receipt = run(mined(allocated_sdk.create_presale(admin, ADMIN, 10_000 * USDC, 5_000 * USDC, 3600, config)))

    presale_id = allocated_sdk.presale_id_from_receipt(receipt)
    assert presale_id == 1
    presale = run(allocated_sdk.get_presale(presale_id))
    assert presale.presale_owner == ADMIN
    assert presale.status == PresaleStatus.ACTIVE
    assert len(allocated_chain.sent[0]["args"]) == 5


def test_create_presale_validates_amounts(allocated_sdk, allocated_chain, admin):
    raises_code("INVALID_AMOUNT", allocated_sdk.create_presale(
        admin, ADMIN, 1_000 * USDC, 2_000 * USDC, 3600, make_deployment_config()))
    assert allocated_chain.sent == []


def test_allocated_rejects_reputation_operations(allocated_sdk, allocated_chain, alice, admin):
    presale_id = allocated_chain.add_presale()
    error = raises_code("UNSUPPORTED_OPERATION", allocated_sdk.claim_tokens(alice, presale_id))
    assert error.kind == ErrorKind.CONFIGURATION
    raises_code("UNSUPPORTED_OPERATION", allocated_sdk.upload_allocation(admin, presale_id, ALICE, 1, 1))


# ---------- Reputation variant ----------

def test_reputation_lifecycle(reputation_sdk, reputation_chain, alice, bob, admin):
    presale_id = reputation_chain.add_presale(min_usdc=5_000 * USDC, owner=ADMIN)
    run(fund_and_contribute(reputation_sdk, reputation_chain, alice, presale_id, 5_000 * USDC))
    run(fund_and_contribute(reputation_sdk, reputation_chain, bob, presale_id, 1_000 * USDC))
    reputation_chain.end_presale(presale_id)
    assert run(reputation_sdk.get_presale(presale_id)).status == PresaleStatus.PENDING_SCORES

    run(mined(reputation_sdk.upload_allocation(admin, presale_id, ALICE, 600_000 * TOKEN, 5_000 * USDC)))
    reputation_chain.finish_allocation(presale_id)
    assert run(reputation_sdk.get_presale(presale_id)).status == PresaleStatus.SCORES_UPLOADED

    run(mined(reputation_sdk.prepare_for_deployment(admin, presale_id, b"\x07")))
    result = run(mined(reputation_sdk.deploy_token(admin, presale_id)))
    assert result.token_address == TOKEN_ADDRESS

    run(mined(reputation_sdk.claim_tokens(alice, presale_id)))
    assert reputation_chain.token_balances[ALICE] == 600_000 * TOKEN

    # bob has no allocation, only a refund
    error = raises_code("NO_TOKENS", reputation_sdk.claim_tokens(bob, presale_id))
    assert error.kind == ErrorKind.NOTHING_TO_CLAIM
    run(mined(reputation_sdk.claim_refund(bob, presale_id)))
    assert reputation_chain.usdc_balances[BOB] == 1_000 * USDC
    raises_code("ALREADY_CLAIMED", reputation_sdk.claim_refund(bob, presale_id))


def test_reputation_claim_all_sends_what_is_owed(reputation_sdk, reputation_chain, alice):
    presale_id = reputation_chain.add_presale(status=PresaleStatus.CLAIMABLE)
    reputation_chain.contributions[(presale_id, ALICE)] = 1_000 * USDC
    reputation_chain.accepted[(presale_id, ALICE)] = 800 * USDC
    reputation_chain.allocations[(presale_id, ALICE)] = 10 * TOKEN

    pending = run(reputation_sdk.claim_all(alice, presale_id))
    assert [p.operation for p in pending] == ["claim tokens", "claim refund"]
    assert reputation_chain.functions_sent() == ["claimTokens", "claimRefund"]


def test_reputation_claim_all_reports_settled_positions(reputation_sdk, reputation_chain, alice):
    failed_id = reputation_chain.add_presale(status=PresaleStatus.FAILED)
    reputation_chain.contributions[(failed_id, ALICE)] = 1_000 * USDC
    reputation_chain.refund_claimed[(failed_id, ALICE)] = True
    error = raises_code("ALREADY_CLAIMED", reputation_sdk.claim_all(alice, failed_id))
    assert error.operation == "claim refund"

    claimable_id = reputation_chain.add_presale(status=PresaleStatus.CLAIMABLE)
    reputation_chain.allocations[(claimable_id, ALICE)] = 10 * TOKEN
    reputation_chain.tokens_claimed[(claimable_id, ALICE)] = True
    error = raises_code("ALREADY_CLAIMED", reputation_sdk.claim_all(alice, claimable_id))
    assert error.operation == "claim tokens"

    raises_code("NO_REFUND", reputation_sdk.claim_all(alice, reputation_chain.add_presale(status=PresaleStatus.FAILED)))
    assert reputation_chain.sent == []


def test_reputation_presale_info_includes_supply(reputation_sdk, reputation_chain, admin):
    receipt = run(mined(reputation_sdk.create_presale(
        admin, ADMIN, 10_000 * USDC, 5_000 * USDC, 3600, make_deployment_config(),
        presale_token_supply=1_000_000 * TOKEN,
    )))
    presale_id = reputation_sdk.presale_id_from_receipt(receipt)

    info = run(reputation_sdk.get_presale_info(presale_id))
    assert info.expected_token_supply == 1_000_000 * TOKEN
    assert info.total_allocated_tokens == 0
    assert info.total_accepted_usdc == 0
    assert info.presale.total_score == 0
    assert "totalAcceptedUsdc" in reputation_chain.reads


def test_reputation_create_needs_token_supply(reputation_sdk, reputation_chain, admin):
    raises_code("INVALID_AMOUNT", reputation_sdk.create_presale(
        admin, ADMIN, 10_000 * USDC, 5_000 * USDC, 3600, make_deployment_config()))
    assert reputation_chain.sent == []


def test_reputation_rejects_allocated_operations(reputation_sdk, reputation_chain, alice, admin):
    presale_id = reputation_chain.add_presale()
    raises_code("UNSUPPORTED_OPERATION", reputation_sdk.claim(alice, presale_id))
    raises_code("UNSUPPORTED_OPERATION", reputation_sdk.set_karma_fee_for_presale(admin, presale_id, 10))
    raises_code("UNSUPPORTED_OPERATION", reputation_sdk.get_max_accepted_usdc(presale_id, ALICE))
    assert reputation_chain.sent == []
