# app/lib/openai_client.py
from openai import OpenAI
from app.config import config

# Story text: any OpenAI-compatible chat endpoint (OpenAI, DeepSeek, ...).
# A missing key still builds a client; calls then fail and the narrative
# stage falls back to its offline story.
text_client = OpenAI(
    api_key=config.text_api_key or "unset",
    base_url=config.text_api_base_url,
    timeout=config.narrative_timeout_s,
    max_retries=0,
)

# Image description: vision-capable OpenAI model.
vision_client = OpenAI(
    api_key=config.openai_api_key or "unset",
    timeout=config.vision_timeout_s,
    max_retries=0,
)
