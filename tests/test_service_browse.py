"""
Brief: Tests for NdnSd.browse() and NdnSd.cancel() over the loopback provider.

Inputs:
  - None

Outputs:
  - None
"""

from ndnsd import errors
from ndnsd.provider.base import FLAG_ADD
from ndnsd.record import AdvertiseParameters, Announcement, BrowseConstraints, Proto, ServiceState


class Events:
    def __init__(self):
        self.items = []
        self.errors = []

    def __call__(self, request_id, announcement, record, user_data):
        self.items.append((request_id, announcement, record, user_data))

    def on_error(self, request_id, error_code, message, is_transient, user_data):
        self.errors.append((request_id, error_code, message, is_transient, user_data))

    def uuids(self, announcement=Announcement.ADDED):
        return [r.uuid for _i, a, r, _u in self.items if a is announcement]


def _announce(sd, protocol=Proto.UDP, subtype="", prefix="/test/prefix", port=45312):
    sd.announce(
        AdvertiseParameters(protocol=protocol, subtype=subtype, prefix=prefix, port=port),
        None,
    )


def test_peer_sees_advertised_service_without_payload(make_sd, pump):
    a = make_sd("A")
    b = make_sd("B")
    _announce(a)
    pump(a)

    events = Events()
    request_id = b.browse(BrowseConstraints(protocol=Proto.UDP, user_data="ud"), events)
    pump(a, b)

    assert request_id == 1
    assert len(events.items) == 1
    rid, announcement, record, user_data = events.items[0]
    assert (rid, announcement, user_data) == (1, Announcement.ADDED, "ud")
    assert record.uuid == "A"
    assert record.protocol is Proto.UDP
    assert record.state is ServiceState.DISCOVERED
    assert record.domain == "local."
    assert record.prefix == ""
    assert record.port == 0


def test_handle_never_discovers_itself(make_sd, pump):
    a = make_sd("A")
    _announce(a)
    events = Events()
    a.browse(BrowseConstraints(), events)
    pump(a)
    assert events.items == []


def test_protocol_and_subtype_must_match(make_sd, network, pump):
    b = make_sd("B")
    network.advertise("T", "_ndn._tcp,mfd")
    network.advertise("U", "_ndn._udp.")

    mfd, nfd, udp = Events(), Events(), Events()
    b.browse(BrowseConstraints(protocol=Proto.TCP, subtype="mfd"), mfd)
    b.browse(BrowseConstraints(protocol=Proto.TCP, subtype="nfd"), nfd)
    b.browse(BrowseConstraints(protocol=Proto.UDP), udp)
    pump(b)

    assert mfd.uuids() == ["T"]
    assert nfd.uuids() == []
    assert udp.uuids() == ["U"]
    assert mfd.items[0][2].subtype == "mfd"


def test_plain_browse_does_not_see_subtype_adverts(make_sd, network, pump):
    b = make_sd("B")
    network.advertise("T", "_ndn._tcp,mfd")
    network.advertise("P", "_ndn._tcp.")

    plain = Events()
    b.browse(BrowseConstraints(protocol=Proto.TCP), plain)
    pump(b)

    assert plain.uuids() == ["P"]


def test_concurrent_tcp_and_udp_browses_get_distinct_ids(make_sd, network, pump):
    b = make_sd("B")
    tcp, udp = Events(), Events()
    tcp_id = b.browse(BrowseConstraints(protocol=Proto.TCP), tcp)
    udp_id = b.browse(BrowseConstraints(protocol=Proto.UDP), udp)
    network.advertise("T", "_ndn._tcp.")
    network.advertise("U", "_ndn._udp.")
    pump(b)

    assert tcp_id != udp_id
    assert {i for i, *_ in tcp.items} == {tcp_id}
    assert {i for i, *_ in udp.items} == {udp_id}
    assert tcp.uuids() == ["T"]
    assert udp.uuids() == ["U"]


def test_each_browse_request_reports_a_service_once(make_sd, network, pump):
    b = make_sd("B")
    first, second = Events(), Events()
    b.browse(BrowseConstraints(), first)
    b.browse(BrowseConstraints(), second)
    network.advertise("X", "_ndn._udp.")
    browser = network.browsers[0]
    browser.post(FLAG_ADD, 0, errors.ERR_NO_ERROR, "X", "_ndn._udp.", "local.")
    pump(b)

    assert first.uuids() == ["X"]
    assert second.uuids() == ["X"]
    assert first.items[0][2] is not second.items[0][2]


def test_removal_reports_the_discovered_record(make_sd, network, pump):
    b = make_sd("B")
    events = Events()
    b.browse(BrowseConstraints(), events)
    network.advertise("X", "_ndn._udp.")
    pump(b)
    network.withdraw("X")
    network.withdraw("never-seen")
    pump(b)

    assert [a for _i, a, _r, _u in events.items] == [Announcement.ADDED, Announcement.REMOVED]
    assert events.items[0][2] is events.items[1][2]


def test_cancel_stops_further_announcements(make_sd, network, pump):
    b = make_sd("B")
    events = Events()
    request_id = b.browse(BrowseConstraints(), events)
    network.advertise("X", "_ndn._udp.")
    pump(b)
    b.cancel(request_id)
    b.cancel(request_id)
    b.cancel(999)
    network.advertise("Y", "_ndn._udp.")
    pump(b)

    assert events.uuids() == ["X"]
    assert all(h.closed for h in network.handles if h.kind == "browse")


def test_cancel_before_pump_discards_queued_events(make_sd, network, pump):
    b = make_sd("B")
    events = Events()
    network.advertise("X", "_ndn._udp.")
    request_id = b.browse(BrowseConstraints(), events)
    b.cancel(request_id)
    pump(b)
    assert events.items == []


def test_request_ids_are_reused_after_cancel(make_sd):
    b = make_sd("B")
    first = b.browse(BrowseConstraints(), Events())
    second = b.browse(BrowseConstraints(), Events())
    assert (first, second) == (1, 2)
    b.cancel(second)
    assert b.browse(BrowseConstraints(), Events()) == 2


def test_unparseable_registration_type_is_dropped(make_sd, network, pump):
    b = make_sd("B")
    events = Events()
    b.browse(BrowseConstraints(), events)
    network.browsers[0].post(FLAG_ADD, 0, errors.ERR_NO_ERROR, "Z", "_foo._bar.", "local.")
    pump(b)
    assert events.items == []


def test_synchronous_browse_failure(make_sd, provider):
    provider.reject["browse"] = errors.ERR_BAD_INTERFACE_INDEX
    b = make_sd("B", provider)
    events = Events()
    request_id = b.browse(BrowseConstraints(interface_index=99, user_data="u"), events, events.on_error)
    assert request_id == -1
    assert events.errors == [
        (-1, errors.ERR_BAD_INTERFACE_INDEX, "specified interface does not exist", True, "u")
    ]


def test_asynchronous_browse_error_keeps_request(make_sd, network, pump):
    b = make_sd("B")
    events = Events()
    request_id = b.browse(BrowseConstraints(user_data=3), events, events.on_error)
    network.browsers[0].post(0, 0, errors.ERR_UNKNOWN, "", "", "")
    pump(b)
    assert events.errors == [(request_id, errors.ERR_UNKNOWN, "unknown error", True, 3)]

    network.advertise("X", "_ndn._udp.")
    pump(b)
    assert events.uuids() == ["X"]
