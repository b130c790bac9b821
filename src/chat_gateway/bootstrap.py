from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from chat_gateway.app_config import AppConfig, RuntimeEnv
from chat_gateway.catalog import ModelCatalog
from chat_gateway.logging_config import setup_logging
from chat_gateway.orchestrator import ChatOrchestrator
from chat_gateway.provider import create_adapters, create_client
from chat_gateway.quota import QuotaGate
from chat_gateway.storage import ConversationStore, GatewayStore, PolicyStore, UsageLedger


@dataclass
class AppRuntime:
    orchestrator: ChatOrchestrator
    catalog: ModelCatalog
    store: GatewayStore
    conversations: ConversationStore
    ledger: UsageLedger
    policies: PolicyStore
    log_descriptions: list[str]


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    catalog = ModelCatalog.from_config(app.models)
    if catalog.get(app.default_model) is None:
        logger.warning(f"Default model {app.default_model!r} is not in the model catalog; it will be priced at 0")

    db_path = Path(app.database_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    store = GatewayStore(str(db_path))

    policies = PolicyStore(store)
    seeded = policies.seed(app.rate_limits)
    if seeded:
        logger.info(f"Applied {seeded} rate limit policies from config")

    ledger = UsageLedger(store)
    conversations = ConversationStore(store)
    gate = QuotaGate(ledger, policies, exempt_roles=app.exempt_roles)

    client = create_client(
        env.openai_api_key,
        base_url=env.openai_base_url,
        timeout=app.backend_timeout_seconds,
    )
    orchestrator = ChatOrchestrator(
        catalog=catalog,
        gate=gate,
        conversations=conversations,
        ledger=ledger,
        adapters=create_adapters(client),
        history_limit=app.history_limit,
        backend_timeout_seconds=app.backend_timeout_seconds,
    )

    return AppRuntime(
        orchestrator=orchestrator,
        catalog=catalog,
        store=store,
        conversations=conversations,
        ledger=ledger,
        policies=policies,
        log_descriptions=log_descriptions,
    )
