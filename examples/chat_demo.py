"""Minimal demonstration of the chat engine in simulated mode."""

import asyncio

from chat_core import ChatService
from chat_core.api.service import describe_event


async def main() -> None:
    service = ChatService(dispatch_mode="simulated")
    service.on_event(lambda e: print("event:", describe_event(e)) if e.kind == "state" else None)
    await service.refresh_models()
    thread = service.new_thread()
    snap = await service.send(thread["id"], "What is 2+2?")
    thread_id = snap["id"]
    message_id = snap["messages"][-1]["id"]
    print("Question:", service.begin_edit(thread_id, message_id))
    snap = await service.submit_edit(thread_id, "What is 3+3?")
    print("Snapshot:", snap)


if __name__ == "__main__":
    asyncio.run(main())
