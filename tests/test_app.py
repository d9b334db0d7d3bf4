import asyncio

from backend.app import create_app
from backend.app.core import boot_core, core_health
from backend.app.models import MODEL_REGISTRY, Deposit, get_model, models_health
from backend.app.routes import ROUTERS_EXPECTED, list_registered_routes
from backend.app.schemas import TransferWebhook, get_public_exports


def test_models_registry_is_complete():
    health = models_health()

    assert health["ok"] is True
    assert health["missing_tables"] == []
    assert get_model("Deposit") is Deposit
    assert set(MODEL_REGISTRY) == {"ProviderEvent", "UserAddress", "Deposit", "UserBalance"}


def test_schema_facade_exports():
    exports = get_public_exports()

    assert exports["by_module"]["backend.app.schemas.webhook_schemas"] == [
        "TransferWebhook",
        "WebhookAck",
        "WebhookRejection",
    ]
    assert TransferWebhook.__name__ == "TransferWebhook"


def test_routes_are_registered():
    app = create_app()
    paths = {route.path for route in app.routes}

    assert set(list_registered_routes()) == set(ROUTERS_EXPECTED)
    assert "/api/webhooks/bitgo" in paths
    assert "/api/wallets/{user_id}/addresses/provision" in paths
    assert "/health" in paths


def test_core_health_with_test_environment():
    health = core_health()
    boot = boot_core()

    assert health["ok"] is True, health["errors"]
    assert health["snapshot"]["bitgoTokenSet"] == "yes"
    assert boot["health"]["ok"] is True


async def test_lifespan_drains_background_work():
    app = create_app()
    finished = []

    async def unit():
        await asyncio.sleep(0.01)
        finished.append(True)

    async with app.router.lifespan_context(app):
        app.state.background_runner.submit(unit(), name="unit")

    assert finished == [True]
    assert app.state.background_runner.pending == 0
