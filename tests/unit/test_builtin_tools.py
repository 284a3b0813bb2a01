import pytest

from isohub_agent.agent.registry import ToolRegistry
from isohub_agent.agent.tools import (
    InMemoryMerchantDirectory,
    MerchantRecord,
    calculate_commission,
    compare_processors,
    register_builtin_tools,
)
from isohub_agent.retrieval.hybrid import HybridRetriever
from isohub_agent.retrieval.store import InMemoryKnowledgeStore
from isohub_agent.types import KnowledgeEntry, TenantContext

CONTEXT = TenantContext(organization_id="org-1", session_id="s-1")


def _registry(with_merchants: bool = False) -> ToolRegistry:
    store = InMemoryKnowledgeStore(
        [
            KnowledgeEntry(
                id=1,
                organization_id="org-1",
                category="pricing",
                question="What is interchange?",
                answer="Interchange is the fee paid to the issuing bank.",
            )
        ]
    )
    merchants = InMemoryMerchantDirectory(
        [
            MerchantRecord("org-1", "MID-100", "Joe's Pizza", "active", "TSYS"),
            MerchantRecord("org-1", "MID-200", "Pizza Palace", "pending"),
            MerchantRecord("org-2", "MID-300", "Other Pizza", "active"),
        ]
    )
    registry = ToolRegistry()
    register_builtin_tools(registry, HybridRetriever(store), merchants=merchants if with_merchants else None)
    return registry


def test_commission_formula() -> None:
    result = calculate_commission(100000, 50, 40)

    assert result["calculations"] == {
        "gross_residual": "$500.00",
        "agent_share": "$200.00",
        "annual_projection": "$2,400.00",
    }
    assert result["input_volume"] == "$100,000.00"
    assert result["split_percentage"] == "40%"


def test_compare_processors_handles_unknown_names() -> None:
    result = compare_processors(["clearent", "Acme Pay"])

    assert result["comparison"][0]["name"] == "Clearent"
    assert result["comparison"][1]["note"] == "Limited information available"
    assert result["recommendation"].startswith("Based on common use cases, clearent")


def test_builtin_registration_depends_on_merchant_directory() -> None:
    assert _registry().names() == [
        "search_knowledge",
        "calculate_commission",
        "compare_processors",
        "get_current_date",
    ]
    assert _registry(with_merchants=True).names()[-2:] == ["search_merchants", "get_merchant_stats"]


@pytest.mark.asyncio
async def test_search_knowledge_tool_uses_tenant_scope() -> None:
    registry = _registry()

    result = await registry.execute("search_knowledge", {"query": "interchange fee"}, CONTEXT)
    other = await registry.execute(
        "search_knowledge",
        {"query": "interchange fee"},
        TenantContext(organization_id="org-2", session_id="s-2"),
    )

    assert result.output["found"] == 1
    assert result.output["results"][0]["question"] == "What is interchange?"
    assert other.output["found"] == 0


@pytest.mark.asyncio
async def test_commission_tool_rejects_split_over_hundred() -> None:
    registry = _registry()

    result = await registry.execute(
        "calculate_commission",
        {"volume": 1000, "basis_points": 10, "split_percentage": 150},
        CONTEXT,
    )

    assert result.is_error


@pytest.mark.asyncio
async def test_merchant_tools_scoped_to_organization() -> None:
    registry = _registry(with_merchants=True)

    found = await registry.execute("search_merchants", {"query": "pizza", "status": "active"}, CONTEXT)
    stats = await registry.execute("get_merchant_stats", {}, CONTEXT)

    assert found.output["found"] == 1
    assert found.output["merchants"][0]["mid"] == "MID-100"
    assert stats.output == {
        "total_merchants": 2,
        "by_status": {"active": 1, "pending": 1},
    }


@pytest.mark.asyncio
async def test_merchant_stats_takes_no_period_argument() -> None:
    registry = _registry(with_merchants=True)

    definition = next(d for d in registry.definitions() if d["name"] == "get_merchant_stats")
    stats = await registry.execute("get_merchant_stats", {}, CONTEXT)

    assert "period" not in definition["input_schema"].get("properties", {})
    assert "period" not in stats.output
