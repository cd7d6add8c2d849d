import json
import logging
import os
import re
from abc import abstractmethod
import aiohttp
from signull.config import get_settings
from signull.players.base import BotPlayer, SignullSubmission, TableView
from signull.prompts.templates import (
    CONNECT_USER_TEMPLATE,
    DIRECT_GUESS_USER_TEMPLATE,
    GUESSER_SYSTEM_PROMPT,
    SETTER_SYSTEM_PROMPT,
    SETTER_USER_TEMPLATE,
    SETTER_WORD_PROMPT,
    SIGNULL_USER_TEMPLATE,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60)


def extract_json(text: str) -> dict:
    """
    Pulls a JSON object out of a model reply, tolerating markdown fences and preambles.
    """
    try:
        data = json.loads(text)
        return data if isinstance(data, dict) else {}
    except json.JSONDecodeError:
        pass

    for pattern in (r'```(?:json)?\s*(\{.*?\})\s*```', r'(\{.*\})'):
        match = re.search(pattern, text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group(1))
            except json.JSONDecodeError:
                continue
    return {}


class LLMPlayer(BotPlayer):
    """
    Bot backed by a chat model. Subclasses only implement _call_api.
    API failures degrade to empty answers; the engine then rejects them like any bad input.
    """

    async def _ask(self, system_prompt: str, user_prompt: str, context: str) -> dict:
        try:
            return extract_json(await self._call_api(system_prompt, user_prompt))
        except (aiohttp.ClientError, TimeoutError, KeyError, IndexError) as e:
            logger.error(f"{context} failed for {self.name}: {e}")
            return {}

    async def choose_secret_word(self) -> str:
        data = await self._ask(SETTER_WORD_PROMPT, "Choose your secret word.", "choose_secret_word")
        return str(data.get("word") or "")

    async def give_signull(self, view: TableView, error_msg: str | None = None) -> SignullSubmission:
        user_prompt = SIGNULL_USER_TEMPLATE.format(**view.model_dump())
        if error_msg:
            user_prompt += f"\n\nIMPORTANT: your last signull was rejected: {error_msg}"
        data = await self._ask(GUESSER_SYSTEM_PROMPT, user_prompt, "give_signull")
        return SignullSubmission(word=data.get("word"), clue=data.get("clue"))

    async def connect(self, view: TableView) -> str:
        data = await self._ask(GUESSER_SYSTEM_PROMPT, CONNECT_USER_TEMPLATE.format(**view.model_dump()), "connect")
        return str(data.get("guess") or "")

    async def intercept(self, view: TableView) -> str:
        if not self.secret_word:
            logger.error(f"Setter {self.name} asked to intercept without a secret word")
            return ""
        system_prompt = SETTER_SYSTEM_PROMPT.format(secret_word=self.secret_word)
        data = await self._ask(system_prompt, SETTER_USER_TEMPLATE.format(**view.model_dump()), "intercept")
        return str(data.get("guess") or "")

    async def direct_guess(self, view: TableView) -> str | None:
        if view.direct_guesses_left <= 0:
            return None
        data = await self._ask(
            GUESSER_SYSTEM_PROMPT, DIRECT_GUESS_USER_TEMPLATE.format(**view.model_dump()), "direct_guess"
        )
        guess = data.get("guess")
        return str(guess) if guess else None

    @abstractmethod
    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        pass


class ChatCompletionsPlayer(LLMPlayer):
    """
    Any OpenAI-compatible chat completions endpoint (OpenAI itself, or a local Ollama at /v1).
    """

    def __init__(
        self,
        name: str,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        base_url: str = "https://api.openai.com/v1",
    ):
        super().__init__(name)
        self.model = model
        self.api_key = api_key or get_settings().openai_api_key or os.getenv("OPENAI_API_KEY")
        self.url = f"{base_url.rstrip('/')}/chat/completions"

    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
        }

        async with aiohttp.ClientSession(timeout=REQUEST_TIMEOUT) as session:
            async with session.post(self.url, headers=headers, json=payload) as resp:
                if resp.status != 200:
                    logger.error(f"{self.url} returned {resp.status}: {await resp.text()}")
                    return "{}"
                data = await resp.json()
                return data["choices"][0]["message"]["content"]


class AnthropicPlayer(LLMPlayer):
    def __init__(self, name: str, model: str = "claude-3-5-haiku-latest", api_key: str | None = None):
        super().__init__(name)
        self.model = model
        self.api_key = api_key or get_settings().anthropic_api_key or os.getenv("ANTHROPIC_API_KEY")
        self.url = "https://api.anthropic.com/v1/messages"

    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        headers = {
            "x-api-key": self.api_key or "",
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        payload = {
            "model": self.model,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
            "max_tokens": 256,
        }

        async with aiohttp.ClientSession(timeout=REQUEST_TIMEOUT) as session:
            async with session.post(self.url, headers=headers, json=payload) as resp:
                if resp.status != 200:
                    logger.error(f"Anthropic API error: {resp.status} - {await resp.text()}")
                    return "{}"
                data = await resp.json()
                return data["content"][0]["text"]


class ScriptedPlayer(BotPlayer):
    """
    Plays from a fixed script, for tests and dry runs.

    script keys: "secret" (str), "signulls" (list of [word, clue]),
    "connects" / "intercepts" (clue -> guess), "direct" (list of guesses).
    """

    def __init__(self, name: str, script: dict | None = None):
        super().__init__(name)
        self.script = script or {}
        self._signulls = list(self.script.get("signulls", []))
        self._direct = list(self.script.get("direct", []))

    async def choose_secret_word(self) -> str:
        return self.script.get("secret", "")

    async def give_signull(self, view: TableView, error_msg: str | None = None) -> SignullSubmission:
        if not self._signulls:
            return SignullSubmission()
        word, clue = self._signulls.pop(0)
        return SignullSubmission(word=word, clue=clue)

    async def connect(self, view: TableView) -> str:
        return self.script.get("connects", {}).get(view.clue, "")

    async def intercept(self, view: TableView) -> str:
        return self.script.get("intercepts", {}).get(view.clue, "")

    async def direct_guess(self, view: TableView) -> str | None:
        if self._direct and view.direct_guesses_left > 0:
            return self._direct.pop(0)
        return None
