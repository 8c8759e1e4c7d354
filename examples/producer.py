import asyncio
from docqueue.client.producer import ProducerClient


async def main():
    # Connect to local TCP server on port 9000
    producer = ProducerClient("localhost:9000", queue="demo")

    print("Sending messages via Binary TCP...")
    for i in range(10):
        # odd messages jump the line
        priority = 0.0 if i % 2 else 1.0
        msg_id = await producer.send(
            payload={"type": "greeting", "text": f"Hello world {i}", "value": i},
            priority=priority,
        )
        print(f"Sent message {i} with ID: {msg_id} (priority {priority})")

    await producer.close()


if __name__ == "__main__":
    asyncio.run(main())
