from __future__ import annotations

import random

from earnloop.services.fulfillment import FulfillmentRequest


class ScriptedRandom(random.Random):
    """
    random() returns the given values in order; everything else behaves like Random.
    """

    def __init__(self, values) -> None:
        super().__init__(0)
        self._values = list(values)

    def random(self) -> float:
        if not self._values:
            raise AssertionError("ScriptedRandom exhausted")
        return self._values.pop(0)


class RecordingFulfillment:
    """
    Keeps every submitted request for assertions.
    """

    def __init__(self) -> None:
        self.submitted: list[FulfillmentRequest] = []

    async def submit(self, request: FulfillmentRequest) -> None:
        self.submitted.append(request)
