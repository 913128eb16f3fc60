import json
import time
from enum import Enum

from agent.capabilities import CapabilityRegistry
from agent.dispatcher import Dispatcher
from agent.prompts import (
    ROUTING_SYSTEM_PROMPT,
    NARRATION_SYSTEM_PROMPT,
    FEEDBACK_ADDENDUM,
    COMPANY_NARRATION_PROMPT,
    NARRATION_TEMPLATE,
    COMPANY_DATA_TEMPLATE,
    CLARIFICATION_FALLBACK,
    NARRATION_TEMPERATURE,
    NARRATION_MAX_TOKENS,
    COMPANY_TEMPERATURE,
    COMPANY_MAX_TOKENS,
)
from config import COMPANY_NAME, DEFAULT_USER_ID
from core.chart_series import build_chart_payload, is_intraday_chart, normalize_intraday_chart

COMPANY_FUNCTION = "get_company_info"


class AgentState(Enum):
    AWAITING_ROUTING = "awaiting_routing"
    DISPATCHING = "dispatching"
    NARRATING = "narrating"


def parse_arguments(arguments_json) -> dict:
    """Model-emitted argument blob -> dict. Malformed JSON is an empty invocation."""
    if isinstance(arguments_json, dict):
        return arguments_json
    if not arguments_json:
        return {}
    try:
        parsed = json.loads(arguments_json)
    except (TypeError, ValueError):
        print(f"[AGENT] malformed function arguments, using {{}}: {str(arguments_json)[:120]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def chart_fields(result, arguments: dict = None) -> dict:
    """Chart payload for a dispatch result, or {} when the shape is not chartable."""
    if isinstance(result, list):
        return build_chart_payload(result) or {}
    if is_intraday_chart(result):
        return normalize_intraday_chart(result, result.get("symbol") or (arguments or {}).get("symbol")) or {}
    return {}


class ChatAgent:
    """
    One request = one pass through the state machine:

        AWAITING_ROUTING --(plain text)--------------------------> NARRATING
        AWAITING_ROUTING --(function call)--> DISPATCHING -------> NARRATING

    Routing sees the chat history and the capability list. Narration sees the
    history plus the dispatch result embedded as JSON.
    """

    def __init__(self, model, registry: CapabilityRegistry, dispatcher: Dispatcher,
                 chat_log=None, company_name: str = COMPANY_NAME):
        self.model = model
        self.registry = registry
        self.dispatcher = dispatcher
        self.chat_log = chat_log
        self.company_name = company_name

    def _feedback_reports(self, user_id: str) -> list:
        store = self.chat_log.acquire() if self.chat_log is not None else None
        if store is None:
            return []
        try:
            return store.recent_reports(user_id)
        except (OSError, ValueError) as e:
            print(f"[AGENT] could not read feedback for user={user_id}: {e}")
            return []

    def _narration_directive(self, user_id: str) -> str:
        reports = self._feedback_reports(user_id)
        if not reports:
            return NARRATION_SYSTEM_PROMPT
        return NARRATION_SYSTEM_PROMPT + FEEDBACK_ADDENDUM.format(reports=". ".join(reports))

    async def handle_chat(self, messages: list, user_id: str = DEFAULT_USER_ID) -> dict:
        start = time.time()
        state = AgentState.AWAITING_ROUTING

        routing = await self.model.complete(
            ROUTING_SYSTEM_PROMPT.format(company_name=self.company_name),
            messages,
            capabilities=self.registry.descriptors(),
        )

        if routing.function_call is None:
            state = AgentState.NARRATING
            print(f"[AGENT] state={state.value} direct answer ({time.time() - start:.1f}s)")
            return {"role": "assistant", "content": routing.content or CLARIFICATION_FALLBACK}

        state = AgentState.DISPATCHING
        name = routing.function_call.name
        arguments = parse_arguments(routing.function_call.arguments_json)
        print(f"[AGENT] state={state.value} function={name} args={json.dumps(arguments)[:200]}")

        result = await self.dispatcher.dispatch(name, arguments)
        chart = chart_fields(result, arguments)

        state = AgentState.NARRATING
        data = json.dumps(result, indent=2, default=str, ensure_ascii=False)
        if name == COMPANY_FUNCTION:
            narration = await self.model.complete(
                COMPANY_NARRATION_PROMPT,
                messages + [{"role": "user", "content": COMPANY_DATA_TEMPLATE.format(data=data)}],
                temperature=COMPANY_TEMPERATURE,
                max_tokens=COMPANY_MAX_TOKENS,
            )
        else:
            narration = await self.model.complete(
                self._narration_directive(user_id),
                messages + [{"role": "user", "content": NARRATION_TEMPLATE.format(data=data)}],
                temperature=NARRATION_TEMPERATURE,
                max_tokens=NARRATION_MAX_TOKENS,
            )

        print(f"[AGENT] state={state.value} narrated {name} chart={'yes' if chart else 'no'} ({time.time() - start:.1f}s)")
        response = {
            "role": "assistant",
            "content": narration.content or "",
            "rawData": result,
            "functionName": name,
        }
        response.update(chart)
        return response
