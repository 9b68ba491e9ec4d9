import asyncio

from llm_catalog.app_config import get_app_config
from llm_catalog.discovery import LocalModelDiscovery


async def main():
    config = get_app_config()
    local = config.llm.local
    print(f"--- Local provider: {local.display_name} ({local.http_url or 'no server address'}) ---")

    result = await LocalModelDiscovery.for_local_config(local).discover()
    print(f"--- Discovered Models ({len(result.models)} total) ---")
    for m in result.models:
        print(f"{m.id}: {m.provider.value}")
    for source, error in result.errors.items():
        print(f"!! {source}: {error}")


if __name__ == "__main__":
    asyncio.run(main())
