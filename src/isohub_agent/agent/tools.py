"""Built-in tool implementations for the ISO Hub agent."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

from isohub_agent.agent.registry import ToolRegistry, ToolSpec
from isohub_agent.retrieval.hybrid import HybridRetriever
from isohub_agent.types import TenantContext

MerchantStatus = Literal["active", "inactive", "pending", "suspended"]


@dataclass(slots=True)
class MerchantRecord:
    organization_id: str
    mid: str
    dba: str
    status: str
    processor: str | None = None


class MerchantDirectory(Protocol):
    """Contract of the external merchant back-end used by merchant tools."""

    async def search(
        self,
        organization_id: str,
        query: str,
        *,
        status: str | None = None,
        limit: int = 10,
    ) -> list[MerchantRecord]:
        """Find merchants whose DBA or MID contains `query`."""

    async def list_all(self, organization_id: str) -> list[MerchantRecord]:
        """Every merchant visible to a tenant."""


class InMemoryMerchantDirectory:
    """Merchant directory used for tests and local prototyping."""

    def __init__(self, merchants: list[MerchantRecord] | None = None) -> None:
        self._merchants = list(merchants or [])

    async def search(
        self,
        organization_id: str,
        query: str,
        *,
        status: str | None = None,
        limit: int = 10,
    ) -> list[MerchantRecord]:
        needle = query.lower()
        hits = [
            merchant
            for merchant in self._merchants
            if merchant.organization_id == organization_id
            and (needle in merchant.dba.lower() or needle in merchant.mid.lower())
            and (status is None or merchant.status == status)
        ]
        return hits[:limit]

    async def list_all(self, organization_id: str) -> list[MerchantRecord]:
        return [m for m in self._merchants if m.organization_id == organization_id]


PROCESSOR_PROFILES: dict[str, dict[str, Any]] = {
    "TSYS": {
        "name": "TSYS (Global Payments)",
        "type": "Full-service processor",
        "best_for": "Large merchants, enterprise accounts",
        "avg_setup_time": "5-10 business days",
        "features": ["Advanced reporting", "24/7 support", "Custom integrations"],
    },
    "FIRST DATA": {
        "name": "First Data (Fiserv)",
        "type": "Full-service processor",
        "best_for": "Mid-market merchants",
        "avg_setup_time": "3-5 business days",
        "features": ["Clover POS", "E-commerce solutions", "Mobile payments"],
    },
    "CLEARENT": {
        "name": "Clearent",
        "type": "ISO-focused processor",
        "best_for": "ISO partners, small-medium merchants",
        "avg_setup_time": "1-2 business days",
        "features": ["Fast approvals", "Competitive splits", "Agent portal"],
    },
    "SHIFT4": {
        "name": "Shift4",
        "type": "Technology-focused processor",
        "best_for": "Hospitality, restaurants",
        "avg_setup_time": "2-3 business days",
        "features": ["POS integration", "QR pay", "Tab management"],
    },
}


class SearchKnowledgeInput(BaseModel):
    query: str = Field(min_length=1, description="The question to search for")
    category: str | None = Field(
        default=None,
        description="Category to filter (commission, compliance, pricing, etc.)",
    )


class CommissionInput(BaseModel):
    volume: float = Field(ge=0, description="Processing volume in dollars")
    basis_points: float = Field(ge=0, description="Basis points (e.g. 10 = 0.1%)")
    split_percentage: float = Field(ge=0, le=100, description="Agent split percentage (0-100)")


class CompareProcessorsInput(BaseModel):
    processors: list[str] = Field(min_length=1, description="Processor names to compare")
    criteria: list[str] = Field(
        default_factory=list,
        description="Comparison criteria (e.g. rates, features, support)",
    )


class CurrentDateInput(BaseModel):
    pass


class SearchMerchantsInput(BaseModel):
    query: str = Field(min_length=1, description="Search query (DBA or MID)")
    status: MerchantStatus | None = Field(default=None, description="Filter by status")
    limit: int = Field(default=10, ge=1, le=50, description="Maximum results to return")


class MerchantStatsInput(BaseModel):
    """Takes no arguments: counts always cover every merchant of the tenant."""


def calculate_commission(volume: float, basis_points: float, split_percentage: float) -> dict[str, Any]:
    """Gross residual = volume x bps / 10000; agent share = gross x split / 100."""
    gross = volume * (basis_points / 10000)
    agent_share = gross * (split_percentage / 100)
    annual = agent_share * 12
    return {
        "input_volume": f"${volume:,.2f}",
        "basis_points": basis_points,
        "split_percentage": f"{split_percentage:g}%",
        "calculations": {
            "gross_residual": f"${gross:,.2f}",
            "agent_share": f"${agent_share:,.2f}",
            "annual_projection": f"${annual:,.2f}",
        },
        "formula": (
            f"${volume:,.2f} x {basis_points:g} BPS x {split_percentage:g}% = ${agent_share:,.2f}"
        ),
    }


def compare_processors(processors: list[str], criteria: list[str] | None = None) -> dict[str, Any]:
    comparison: list[dict[str, Any]] = []
    for processor in processors:
        profile = PROCESSOR_PROFILES.get(processor.strip().upper())
        if profile is None:
            comparison.append(
                {"processor": processor, "name": processor, "note": "Limited information available"}
            )
        else:
            comparison.append({"processor": processor, **profile})

    first = comparison[0] if comparison else None
    recommendation = (
        f"Based on common use cases, {first['processor']} is typically best for "
        f"{first.get('best_for', 'general processing')}."
        if first
        else "Unable to compare - processor information not found."
    )
    return {
        "processors": processors,
        "criteria": list(criteria or []),
        "comparison": comparison,
        "recommendation": recommendation,
    }


def register_builtin_tools(
    registry: ToolRegistry,
    retriever: HybridRetriever,
    *,
    merchants: MerchantDirectory | None = None,
) -> None:
    """Register default tool set used by the agent.

    Tools:
    - `search_knowledge`: hybrid retrieval over the tenant knowledge base.
    - `calculate_commission`: residual split arithmetic.
    - `compare_processors`: static processor profiles.
    - `get_current_date`: current UTC date and time.
    - `search_merchants` / `get_merchant_stats`: only when a merchant
      directory is supplied.
    """

    async def _search_knowledge(data: SearchKnowledgeInput, context: TenantContext) -> dict[str, Any]:
        results = await retriever.search(
            data.query, context.organization_id, limit=3, category=data.category
        )
        return {
            "found": len(results),
            "results": [
                {
                    "question": result.question,
                    "answer": result.answer,
                    "category": result.category,
                    "score": round(result.score, 6),
                }
                for result in results
            ],
        }

    async def _calculate_commission(data: CommissionInput, context: TenantContext) -> dict[str, Any]:
        del context
        return calculate_commission(data.volume, data.basis_points, data.split_percentage)

    async def _compare_processors(data: CompareProcessorsInput, context: TenantContext) -> dict[str, Any]:
        del context
        return compare_processors(data.processors, data.criteria)

    async def _current_date(data: CurrentDateInput, context: TenantContext) -> dict[str, str]:
        del data, context
        now = datetime.now(timezone.utc)
        return {"date": now.isoformat(), "formatted": now.strftime("%A, %B %d, %Y")}

    registry.register(
        ToolSpec(
            name="search_knowledge",
            description=(
                "Search the knowledge base for answers to questions about payment "
                "processing, compliance, and ISO operations."
            ),
            args_schema=SearchKnowledgeInput,
            handler=_search_knowledge,
            tags=["retrieval", "rag"],
        )
    )
    registry.register(
        ToolSpec(
            name="calculate_commission",
            description=(
                "Calculate commission/residual amounts based on volume, basis points, "
                "and split percentage."
            ),
            args_schema=CommissionInput,
            handler=_calculate_commission,
            tags=["calculator"],
        )
    )
    registry.register(
        ToolSpec(
            name="compare_processors",
            description="Compare payment processors based on features, setup time, and use cases.",
            args_schema=CompareProcessorsInput,
            handler=_compare_processors,
            tags=["reference"],
        )
    )
    registry.register(
        ToolSpec(
            name="get_current_date",
            description="Get the current date and time.",
            args_schema=CurrentDateInput,
            handler=_current_date,
            tags=["utility"],
        )
    )

    if merchants is None:
        return

    async def _search_merchants(data: SearchMerchantsInput, context: TenantContext) -> dict[str, Any]:
        hits = await merchants.search(
            context.organization_id, data.query, status=data.status, limit=data.limit
        )
        return {
            "found": len(hits),
            "merchants": [
                {"mid": m.mid, "dba": m.dba, "status": m.status, "processor": m.processor}
                for m in hits
            ],
        }

    async def _merchant_stats(data: MerchantStatsInput, context: TenantContext) -> dict[str, Any]:
        records = await merchants.list_all(context.organization_id)
        by_status = Counter(record.status or "unknown" for record in records)
        return {
            "total_merchants": len(records),
            "by_status": dict(by_status),
        }

    registry.register(
        ToolSpec(
            name="search_merchants",
            description="Search for merchants by name, MID, or status.",
            args_schema=SearchMerchantsInput,
            handler=_search_merchants,
            tags=["merchants"],
        )
    )
    registry.register(
        ToolSpec(
            name="get_merchant_stats",
            description="Count the organization's merchants, in total and by status.",
            args_schema=MerchantStatsInput,
            handler=_merchant_stats,
            tags=["merchants"],
        )
    )
