"""Example: fan-out callbacks and an async iterator stream over the in-memory channel."""

import asyncio
import logging

from mongo_pubsub import InMemoryChannel, PubSub

logging.basicConfig(level=logging.INFO)


async def main() -> None:
    pubsub = PubSub(InMemoryChannel("events"))

    sub_id = pubsub.subscribe("user.signup", lambda value: print("callback got", value.message))
    stream = pubsub.async_iterator(["user.signup", "order.placed"])

    await pubsub.publish("user.signup", {"user_id": 101})
    await pubsub.publish("order.placed", {"order_id": 201})

    async with stream:
        for _ in range(2):
            value = await stream.__anext__()
            print("stream got", value.event, value.message)

    pubsub.unsubscribe(sub_id)
    pubsub.close()


if __name__ == "__main__":
    asyncio.run(main())
