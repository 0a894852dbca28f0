"""
HTTP API Tests

Routes, status codes and rate limiting of the aiohttp application.
"""

import base64

import pytest
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from solforge import __version__
from solforge.api import CONFIGURE_WALLET_NOTE, FUND_WALLET_NOTE, create_app
from solforge.config import ServerSettings, Settings
from solforge.exceptions import PROMPT_REQUIRED_MESSAGE, WALLET_NOT_CONFIGURED_MESSAGE
from solforge.intent_parser import EXAMPLE_PROMPTS


@pytest.fixture
async def client(aiohttp_client, settings, wallet, ledger):
    return await aiohttp_client(create_app(settings=settings, wallet=wallet, ledger=ledger))


@pytest.fixture
async def unconfigured_client(aiohttp_client, settings, unconfigured_wallet, ledger):
    return await aiohttp_client(
        create_app(settings=settings, wallet=unconfigured_wallet, ledger=ledger)
    )


# =============================================================================
# Read-only routes
# =============================================================================


class TestStatusRoutes:

    async def test_health(self, client):
        resp = await client.get("/health")
        body = await resp.json()

        assert resp.status == 200
        assert body == {
            "status": "ok",
            "service": "solforge-agent",
            "version": __version__,
            "network": "devnet",
            "agentWallet": True,
        }

    async def test_agent_wallet_enabled(self, client, keypair, secret_json):
        resp = await client.get("/api/agent-wallet")
        body = await resp.json()

        assert resp.status == 200
        assert body == {
            "enabled": True,
            "publicKey": str(keypair.pubkey()),
            "network": "devnet",
            "note": FUND_WALLET_NOTE,
        }
        assert secret_json not in await resp.text()

    async def test_agent_wallet_disabled(self, unconfigured_client):
        resp = await unconfigured_client.get("/api/agent-wallet")

        assert await resp.json() == {
            "enabled": False,
            "network": "devnet",
            "note": CONFIGURE_WALLET_NOTE,
        }

    async def test_examples(self, client):
        resp = await client.get("/api/examples")
        body = await resp.json()

        assert body["examples"] == list(EXAMPLE_PROMPTS)
        assert body["supportedActions"] == ["memo", "tip", "transfer"]


# =============================================================================
# Execution route
# =============================================================================


class TestExecuteNatural:

    async def test_memo_success(self, client, keypair):
        resp = await client.post("/api/execute/natural", json={"prompt": 'Write memo: "gm"'})
        body = await resp.json()

        assert resp.status == 200
        assert body["success"] is True
        assert body["details"]["agentWallet"] == str(keypair.pubkey())
        assert "X-RateLimit-Limit" in resp.headers

    async def test_invalid_json_body(self, client):
        resp = await client.post(
            "/api/execute/natural",
            data="{not json",
            headers={"Content-Type": "application/json"},
        )

        assert resp.status == 400
        assert await resp.json() == {"success": False, "error": PROMPT_REQUIRED_MESSAGE}

    async def test_unconfigured_wallet(self, unconfigured_client):
        resp = await unconfigured_client.post("/api/execute/natural", json={"prompt": "tip 0.001 SOL"})

        assert resp.status == 503
        assert await resp.json() == {"success": False, "error": WALLET_NOT_CONFIGURED_MESSAGE}

    async def test_unknown_prompt(self, client):
        resp = await client.post("/api/execute/natural", json={"prompt": "do a backflip"})
        body = await resp.json()

        assert resp.status == 400
        assert body["suggestions"]

    async def test_rate_limit(self, aiohttp_client, wallet, ledger, settings):
        limited = Settings(
            solana=settings.solana,
            execution=settings.execution,
            server=ServerSettings(rate_limit_max_requests=2, rate_limit_window_seconds=60),
        )
        client = await aiohttp_client(create_app(settings=limited, wallet=wallet, ledger=ledger))

        for _ in range(2):
            resp = await client.post("/api/execute/natural", json={"prompt": "gibberish"})
            assert resp.status == 400

        resp = await client.post("/api/execute/natural", json={"prompt": "gibberish"})

        assert resp.status == 429
        assert "Retry-After" in resp.headers
        assert (await resp.json())["success"] is False

        health = await client.get("/health")
        assert health.status == 200

    async def test_ledger_closed_on_cleanup(self, client, ledger):
        await client.close()

        assert ledger.closed is True


# =============================================================================
# Unsigned builds
# =============================================================================


class TestBuildNatural:

    async def test_returns_base64_transaction(self, unconfigured_client, ledger):
        payer = Keypair().pubkey()

        resp = await unconfigured_client.post(
            "/api/build/natural",
            json={"prompt": "tip 0.001 SOL and write memo: gm", "payer": str(payer)},
        )
        body = await resp.json()

        assert resp.status == 200
        assert body["success"] is True
        tx = VersionedTransaction.from_bytes(base64.b64decode(body["transaction"]))
        assert tx.message.account_keys[0] == payer
        assert body["details"]["payer"] == str(payer)
        assert [intent["type"] for intent in body["details"]["intents"]] == ["tip", "memo"]
        assert ledger.sent == []
        assert "X-RateLimit-Limit" in resp.headers

    async def test_invalid_payer(self, client):
        resp = await client.post(
            "/api/build/natural",
            json={"prompt": "tip 0.001 SOL", "payer": "nope"},
        )
        body = await resp.json()

        assert resp.status == 400
        assert body["success"] is False
        assert body["suggestions"]

    async def test_invalid_json_body(self, client):
        resp = await client.post(
            "/api/build/natural",
            data="[",
            headers={"Content-Type": "application/json"},
        )

        assert resp.status == 400
        assert await resp.json() == {"success": False, "error": PROMPT_REQUIRED_MESSAGE}

    async def test_huge_amount_is_client_error(self, client):
        resp = await client.post(
            "/api/build/natural",
            json={"prompt": "tip 99999999999999999999 SOL", "payer": str(Keypair().pubkey())},
        )

        assert resp.status == 400
