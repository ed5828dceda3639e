from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

SYSTEM_PROMPT = "You are a helpful assistant with access to the user's prior memories."


class LangChainCompleter:
    """Completer backed by any LangChain chat model (ChatOpenAI, fakes, ...)."""

    def __init__(self, chat_model: BaseChatModel, system_prompt: str = SYSTEM_PROMPT):
        self.chat_model = chat_model
        self.system_prompt = system_prompt

    def build_messages(self, context: str, prompt: str) -> list:
        system = self.system_prompt
        if context:
            system = f"{system}\n\nRelevant memories:\n{context}"
        return [SystemMessage(content=system), HumanMessage(content=prompt)]

    def complete(self, context: str, prompt: str) -> str:
        response: Any = self.chat_model.invoke(self.build_messages(context, prompt))
        content = getattr(response, "content", response)
        if isinstance(content, list):
            # multi-part content blocks
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return str(content)
