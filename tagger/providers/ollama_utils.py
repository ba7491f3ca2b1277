"""
Shared Ollama utilities: base URL resolution and model auto-pull.
"""

import json
import logging
import os
import sys

import requests

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def ollama_base_url(base_url: str | None = None) -> str:
    """Resolve the Ollama URL: explicit value, then OLLAMA_HOST, then default."""
    url = base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_URL
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.rstrip("/")


def _is_installed(model: str, installed: set[str]) -> bool:
    # Ollama lists models as "name:tag" and strips ":latest"
    bare = model.split(":")[0]
    candidates = {model, f"{model}:latest", bare, f"{bare}:latest"}
    return not candidates.isdisjoint(installed)


def _progress_line(event: dict, last_status: str) -> str | None:
    """Render one pull event as a stderr progress fragment (None: nothing new)."""
    status = event.get("status", "")
    total = event.get("total", 0)
    completed = event.get("completed", 0)
    if total and completed:
        return f"\r  {status}: {int(completed / total * 100)}%"
    if status != last_status:
        return f"\n  {status}"
    return None


def ollama_ensure_model(base_url: str, model: str) -> bool:
    """Check if an Ollama model is available locally; pull it if not.

    Streams pull progress to stderr so the user sees download status.
    Returns True if a pull happened, False if the model was present.
    Raises RuntimeError if the pull fails or Ollama is unreachable.
    """
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=5)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RuntimeError(
            f"Cannot reach Ollama at {base_url}. "
            "Is Ollama running? Start it with: ollama serve"
        ) from e

    installed = {m["name"] for m in resp.json().get("models", [])}
    if _is_installed(model, installed):
        return False

    logger.info("Pulling Ollama model %s", model)
    print(f"Pulling Ollama model '{model}'...", file=sys.stderr)

    try:
        resp = requests.post(
            f"{base_url}/api/pull",
            json={"name": model, "stream": True},
            stream=True,
            timeout=600,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RuntimeError(f"Failed to pull Ollama model '{model}': {e}") from e

    last_status = ""
    for line in resp.iter_lines():
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if event.get("error"):
            print("", file=sys.stderr)
            raise RuntimeError(f"Ollama pull failed for '{model}': {event['error']}")

        fragment = _progress_line(event, last_status)
        if fragment is not None:
            print(fragment, end="", file=sys.stderr, flush=True)
            last_status = event.get("status", "")

    print(f"\n  Model '{model}' ready.", file=sys.stderr)
    return True
