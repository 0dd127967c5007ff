#!/usr/bin/env python3
"""
Script to push the YAML prompts in data/prompts to Langfuse prompt management.
Run this after updating prompt files to register new versions.
"""
import logging
import sys

from langfuse import Langfuse

from changelog_harvester.config import load_settings
from changelog_harvester.llm.prompts import load_prompt_file
from changelog_harvester.log import setup_logging

logger = logging.getLogger(__name__)


def main():
    """Sync prompts to Langfuse."""
    settings = load_settings()
    setup_logging(settings.LOG_LEVEL)
    if not settings.langfuse_enabled:
        logger.error("LANGFUSE_PUBLIC_KEY and LANGFUSE_SECRET_KEY are required")
        return 1

    client = Langfuse(
        public_key=settings.LANGFUSE_PUBLIC_KEY,
        secret_key=settings.LANGFUSE_SECRET_KEY,
        host=settings.LANGFUSE_HOST,
    )

    results = {}
    for name in (settings.CLASSIFICATION_PROMPT_NAME, settings.EXTRACTION_PROMPT_NAME):
        template = load_prompt_file(settings.PROMPTS_DIR, name)
        if template is None:
            logger.warning(f"No local prompt file for '{name}', skipping")
            continue
        prompt = client.create_prompt(
            name=name,
            prompt=template.text,
            labels=[settings.PROMPT_LABEL],
            type="text",
        )
        results[name] = prompt.version
    client.flush()

    # Print results
    print("\nSync Results:")
    print("-" * 60)
    for name, version in results.items():
        print(f"  {name}: {version}")
    print("-" * 60)
    print(f"\nSynced {len(results)} prompts to Langfuse (label '{settings.PROMPT_LABEL}')")
    return 0


if __name__ == "__main__":
    sys.exit(main())
