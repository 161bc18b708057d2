from dataclasses import dataclass, field

from chatline.server.outbound import OutboundSink


@dataclass(eq=False, frozen=True)
class Client:
    """A named participant and the sink the broadcaster writes to.

    Compared and hashed by identity, so two participants sharing a display
    name are still separate members of the active set.
    """

    name: str
    outbound: OutboundSink = field(repr=False)
