from isohub_agent.config import DEGRADED_MESSAGE
from isohub_agent.orchestrator import format_knowledge_context
from isohub_agent.providers.prompts import build_agent_prompt, build_system_prompt
from isohub_agent.types import SearchResult


def test_system_prompt_carries_persona_and_tenant_additions() -> None:
    prompt = build_system_prompt(["Our preferred processor is Clearent."])

    assert prompt.startswith("You are an AI assistant for ISO Hub")
    assert "Our preferred processor is Clearent." in prompt
    assert "Compliance (PCI DSS, AML/KYC, Regulation E)" in prompt


def test_agent_prompt_lists_tools_and_error_rule() -> None:
    prompt = build_agent_prompt([("calculate_commission", "Residual math."), ("get_current_date", "Today.")])

    assert "- calculate_commission: Residual math." in prompt
    assert "- get_current_date: Today." in prompt
    assert "If a tool returns an error" in prompt


def test_agent_prompt_without_tools_says_so() -> None:
    assert "- (none)" in build_agent_prompt([])


def test_knowledge_context_format() -> None:
    block = format_knowledge_context(
        [
            SearchResult(1, "What is BPS?", "Basis points.", "pricing", 0.5, "hybrid"),
            SearchResult(2, "What is a MID?", "Merchant ID.", "accounts", 0.2, "keyword"),
        ]
    )

    assert block == (
        "\n\nRelevant information from knowledge base:\n"
        "Q: What is BPS?\nA: Basis points.\n\n"
        "Q: What is a MID?\nA: Merchant ID.\n"
    )
    assert format_knowledge_context([]) == ""


def test_degraded_message_is_user_facing() -> None:
    assert "technical difficulties" in DEGRADED_MESSAGE
    assert "error" not in DEGRADED_MESSAGE.lower()
