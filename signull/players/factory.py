from signull.players.adapters import AnthropicPlayer, ChatCompletionsPlayer, ScriptedPlayer
from signull.players.base import BotPlayer


def create_player(name: str, provider: str, model_id: str | None = None, **kwargs) -> BotPlayer:
    provider = provider.lower()
    if provider == "openai":
        return ChatCompletionsPlayer(name, model=model_id or "gpt-4o-mini", **kwargs)
    elif provider == "ollama":
        base_url = kwargs.pop("base_url", "http://localhost:11434/v1")
        return ChatCompletionsPlayer(name, model=model_id or "llama3", base_url=base_url, **kwargs)
    elif provider == "anthropic":
        return AnthropicPlayer(name, model=model_id or "claude-3-5-haiku-latest", **kwargs)
    elif provider == "scripted":
        return ScriptedPlayer(name, kwargs.get("script"))
    else:
        raise ValueError(f"Unknown provider: {provider}")
