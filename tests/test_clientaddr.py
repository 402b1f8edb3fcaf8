from stageguard.clientaddr import resolve_client_address


def test_public_peer_ignores_forwarded_headers():
    sources = {"REMOTE_ADDR": "203.0.113.5", "HTTP_X_FORWARDED_FOR": "10.0.0.1"}
    assert resolve_client_address(sources) == "203.0.113.5"


def test_private_peer_trusts_forwarded_for_first_hop():
    sources = {"REMOTE_ADDR": "10.0.0.2", "HTTP_X_FORWARDED_FOR": " 198.51.100.7 , 10.0.0.3"}
    assert resolve_client_address(sources) == "198.51.100.7"


def test_header_style_keys():
    sources = {"remote_addr": "127.0.0.1", "X-Forwarded-For": "198.51.100.7"}
    assert resolve_client_address(sources) == "198.51.100.7"


def test_real_ip_used_when_forwarded_for_invalid():
    sources = {
        "REMOTE_ADDR": "192.168.0.10",
        "HTTP_X_FORWARDED_FOR": "unknown",
        "HTTP_X_REAL_IP": "198.51.100.8",
    }
    assert resolve_client_address(sources) == "198.51.100.8"


def test_private_peer_without_headers_returns_peer():
    assert resolve_client_address({"REMOTE_ADDR": "172.16.0.4"}) == "172.16.0.4"


def test_private_peer_with_garbage_headers_returns_peer():
    sources = {"REMOTE_ADDR": "fd00::1", "X-Forwarded-For": "evil", "X-Real-IP": ""}
    assert resolve_client_address(sources) == "fd00::1"


def test_missing_peer_never_trusts_headers():
    assert resolve_client_address({"HTTP_X_FORWARDED_FOR": "198.51.100.7"}) == ""
    assert resolve_client_address({}) == ""


def test_invalid_peer_returns_empty():
    sources = {"REMOTE_ADDR": "not-an-ip", "HTTP_X_REAL_IP": "198.51.100.7"}
    assert resolve_client_address(sources) == ""


def test_none_values_are_skipped():
    sources = {"REMOTE_ADDR": "203.0.113.5", "HTTP_X_FORWARDED_FOR": None}
    assert resolve_client_address(sources) == "203.0.113.5"


def test_remote_addr_header_cannot_replace_peer():
    sources = {"HTTP_REMOTE_ADDR": "203.0.113.7", "REMOTE_ADDR": "198.51.100.9"}
    assert resolve_client_address(sources) == "198.51.100.9"
    assert resolve_client_address({"Remote-Addr": "203.0.113.7", "REMOTE_ADDR": "198.51.100.9"}) == "198.51.100.9"


def test_spoofed_private_remote_addr_header_does_not_unlock_forwarding():
    sources = {
        "HTTP_REMOTE_ADDR": "10.0.0.1",
        "HTTP_X_FORWARDED_FOR": "203.0.113.7",
        "REMOTE_ADDR": "198.51.100.9",
    }
    assert resolve_client_address(sources) == "198.51.100.9"


def test_remote_addr_header_alone_is_not_a_peer():
    sources = {"HTTP_REMOTE_ADDR": "10.0.0.1", "HTTP_X_FORWARDED_FOR": "203.0.113.7"}
    assert resolve_client_address(sources) == ""


def test_ipv4_mapped_public_peer_is_not_a_proxy():
    sources = {"REMOTE_ADDR": "::ffff:203.0.113.5", "X-Forwarded-For": "198.51.100.7"}
    assert resolve_client_address(sources) == "::ffff:203.0.113.5"


def test_ipv4_mapped_private_peer_is_a_proxy():
    sources = {"REMOTE_ADDR": "::ffff:10.0.0.2", "X-Forwarded-For": "198.51.100.7"}
    assert resolve_client_address(sources) == "198.51.100.7"
