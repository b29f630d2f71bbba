from packet_factory import PacketFactory


async def forward_events(subscription, websocket):
    """Write every bus event to one client, in publish order.

    Returns when the subscription is closed. SubscriberLagged and
    ConnectionClosed propagate to the caller, which ends the session.
    """
    async for event in subscription:
        await websocket.send(PacketFactory.build(event))
