"""System prompts shared by every provider."""

from __future__ import annotations

from collections.abc import Iterable

_PERSONA = (
    "You are an AI assistant for ISO Hub, a comprehensive merchant services "
    "platform. You help independent sales agents with payment processing, "
    "residual tracking, and business intelligence."
)

_EXPERTISE = """
Key expertise areas:
- Merchant account underwriting and approvals
- Payment processor integrations (First Data, TSYS, Clearent, etc.)
- Commission structures and residual calculations
- Compliance (PCI DSS, AML/KYC, Regulation E)
- Sales techniques and competitive analysis
- Equipment and POS systems
- Fraud prevention and chargeback management

Provide accurate, actionable advice using industry terminology. Be professional but conversational.
""".strip()

_AGENT_RULES = """
When answering questions:
1. Think step-by-step about what information you need.
2. Use tools to gather relevant data when appropriate.
3. If a tool returns an error, correct the input or explain what is missing.
4. Synthesize the information into a specific, actionable response.
""".strip()


def build_system_prompt(custom_prompts: Iterable[str] = ()) -> str:
    """Persona + domain context, followed by any tenant-specific additions."""
    extra = " ".join(prompt.strip() for prompt in custom_prompts if prompt.strip())
    head = f"{_PERSONA} {extra}" if extra else _PERSONA
    return f"{head}\n\n{_EXPERTISE}"


def build_agent_prompt(
    tool_descriptions: Iterable[tuple[str, str]],
    custom_prompts: Iterable[str] = (),
) -> str:
    """System prompt for the tool-use agent, listing every available tool."""
    tools = "\n".join(f"- {name}: {description}" for name, description in tool_descriptions)
    return (
        f"{build_system_prompt(custom_prompts)}\n\n"
        f"You have access to the following tools:\n{tools or '- (none)'}\n\n"
        f"{_AGENT_RULES}"
    )
