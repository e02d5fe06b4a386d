"""System prompt and turn sequence assembly for the chat model."""
from langchain_core.messages import BaseMessage, HumanMessage, AIMessage

from ..models import AIConfig, ActionRule, ActionType, SenderType

DEFAULT_GREETING = "Hej! Hur kan jag hjälpa dig?"
STAFF_REPLY_ACK = "Jag noterar att personalen har svarat."


def build_system_prompt(ai_config: AIConfig, matched_rules: list[ActionRule]) -> str:
    prompt = ai_config.system_prompt or ""
    if ai_config.knowledge_base:
        prompt += f"\n\n## KUNSKAP (använd denna info för att svara):\n{ai_config.knowledge_base}"
    for rule in matched_rules:
        if ActionType(rule.action_type) is not ActionType.ADD_CONTEXT:
            continue
        text = (rule.action_config or {}).get("text")
        if text:
            prompt += f"\n\n## EXTRA INSTRUKTION:\n{text}"
    return prompt


def build_chat_contents(
    system_prompt: str,
    greeting: str | None,
    history: list[dict],
    current_message: str,
) -> list[BaseMessage]:
    """
    Ordered turns for the model: system prompt as the first user turn, greeting as the
    first model turn, then history, then the current message.
    A staff reply is replayed as a quoted user turn plus a model acknowledgement so the
    model knows a human answered without speaking as them.
    """
    turns: list[BaseMessage] = [
        HumanMessage(content=system_prompt),
        AIMessage(content=greeting or DEFAULT_GREETING),
    ]
    for item in history or []:
        content = item.get("content") or ""
        if item.get("sender_type") == SenderType.HUMAN.value:
            turns.append(HumanMessage(content=f'[PERSONALENS SVAR: "{content}"]'))
            turns.append(AIMessage(content=STAFF_REPLY_ACK))
        elif item.get("role") == "assistant":
            turns.append(AIMessage(content=content))
        else:
            turns.append(HumanMessage(content=content))
    turns.append(HumanMessage(content=current_message))
    return turns
