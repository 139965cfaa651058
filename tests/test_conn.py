from datetime import datetime, timedelta

from dpiproxy.conn import ConnectionInfo


def test_str_layout():
    info = ConnectionInfo(
        "10.0.0.7", "example.com", "CONNECT", start_time=datetime(2024, 3, 9, 14, 7, 2)
    )
    assert str(info) == "2024-03-09 14:07:02 10.0.0.7 CONNECT example.com"


def test_str_ends_with_request_parts():
    info = ConnectionInfo("192.168.1.2", "example.org", "GET")
    text = str(info)
    assert text.endswith(" 192.168.1.2 GET example.org")
    assert text.startswith(info.start_time.strftime("%Y-%m-%d %H:%M:%S"))


def test_defaults_start_with_zero_traffic():
    info = ConnectionInfo("127.0.0.1", "example.net", "POST")
    assert info.traffic_in == 0
    assert info.traffic_out == 0


def test_start_time_defaults_to_now():
    before = datetime.now()
    info = ConnectionInfo("127.0.0.1", "example.net", "GET")
    after = datetime.now()
    assert before <= info.start_time <= after + timedelta(seconds=1)


def test_traffic_counters_accumulate():
    info = ConnectionInfo("127.0.0.1", "example.net", "GET")
    info.traffic_in += 1500
    info.traffic_out += 42
    info.traffic_in += 10
    assert (info.traffic_in, info.traffic_out) == (1510, 42)