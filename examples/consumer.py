import asyncio
import random
from docqueue.client.consumer import ConsumerClient


async def main():
    # Connect to local TCP server on port 9000
    consumer = ConsumerClient("localhost:9000", queue="demo")

    print("Consumer started. Waiting for messages...")

    try:
        while True:
            try:
                # Lease for 10 seconds, wait up to 2 seconds for a message
                msg = await consumer.get(
                    {"type": "greeting"}, running_reset_duration=10, wait_duration=2000
                )
                if msg is None:
                    continue

                print(f"Claimed message {msg['id']}: {msg['text']}")

                # Simulate processing work, failing now and then
                await asyncio.sleep(random.uniform(0.5, 2.0))
                if random.random() < 0.2:
                    await consumer.requeue(msg, new_timestamp=False)
                    print(f"Requeued message {msg['id']}")
                    continue

                await consumer.ack(msg)
                print(f"Successfully processed and acked message {msg['id']}")
            except Exception as e:
                print(f"Error: {e}")
                await asyncio.sleep(5)
    finally:
        await consumer.close()


if __name__ == "__main__":
    asyncio.run(main())
