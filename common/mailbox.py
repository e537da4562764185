import asyncio
from collections import deque
from typing import Any, Deque, Optional, Tuple


class Mailbox:
    """Unbuffered hand-off point between control loops.

    A message is delivered only when a receiver takes it while its sender is
    still waiting. A send that times out is withdrawn, so the message can never
    be observed afterwards. Several producers may share one mailbox; messages
    from a single producer keep their order.
    A message handed to a receiver that is cancelled before resuming goes back
    to the front of the line.
    """

    def __init__(self, name: str):
        self.name = name
        self._senders: Deque[Tuple[Any, asyncio.Future]] = deque()   # parked sends
        self._receivers: Deque[asyncio.Future] = deque()             # parked receives

    async def try_send(self, message: Any, timeout: Optional[float]) -> bool:
        """Offer `message` for at most `timeout` seconds. True once it was taken."""
        while self._receivers:
            waiter = self._receivers.popleft()
            if not waiter.done():
                waiter.set_result(message)
                return True

        ack = asyncio.get_running_loop().create_future()
        entry = (message, ack)
        self._senders.append(entry)
        try:
            await asyncio.wait({ack}, timeout=timeout)
        finally:
            if not ack.done():
                ack.cancel()
                self._senders.remove(entry)
        return not ack.cancelled()

    async def receive(self, timeout: Optional[float] = None,
                      cancel: Optional[asyncio.Event] = None) -> Optional[Any]:
        """Next message, or None once `timeout` elapses or `cancel` is set."""
        while self._senders:
            message, ack = self._senders.popleft()
            if not ack.done():
                ack.set_result(None)
                return message
        if cancel is not None and cancel.is_set():
            return None

        waiter = asyncio.get_running_loop().create_future()
        self._receivers.append(waiter)
        waits = {waiter}
        stopper = None
        if cancel is not None:
            stopper = asyncio.ensure_future(cancel.wait())
            waits.add(stopper)
        try:
            await asyncio.wait(waits, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Handed over but never returned: first in line for the next receiver
                ack = asyncio.get_running_loop().create_future()
                self._senders.appendleft((waiter.result(), ack))
            raise
        finally:
            if stopper is not None:
                stopper.cancel()
            if not waiter.done():
                waiter.cancel()
                self._receivers.remove(waiter)
        if waiter.cancelled():
            return None
        return waiter.result()

    def __repr__(self) -> str:
        return f"Mailbox({self.name!r})"
