#!/usr/bin/env python3
"""Virtual LinkyPIC for linky.

Answers the UDP discovery probe with its own address and streams
historic-mode TIC frames to every TCP client.  Frames are cut into
random-sized writes so the collector sees frames split across reads
and several frames per read.  A BASE contract is simulated: the
index grows with the apparent power.

Usage:
    python simulator.py [--host H] [--port P] [--discovery-port D]
                        [--interval S] [--corrupt RATE] [--silent]

Example:
    python simulator.py --host 127.0.0.1 --port 5561 --discovery-port 5051
"""

import argparse
import random
import socket
import threading
import time

from linky.config import DISCOVERY_PROBE
from linky.protocol import CR, ETX, LF, STX, encode_frame, encode_line

ADCO = "021728123456"


def make_frame(index, power, corrupt_rate=0.0):
    """Build one encoded frame for a BASE contract.

    Args:
        index: BASE index in Wh (int).
        power: Apparent power in VA (int).
        corrupt_rate: Probability of flipping one byte in each line.

    Returns:
        bytes: STX ... ETX frame.
    """
    groups = [
        ("ADCO", ADCO),
        ("OPTARIF", "BASE"),
        ("ISOUSC", "30"),
        ("BASE", "%09d" % index),
        ("PTEC", "TH.."),
        ("IINST", "%03d" % max(1, power // 230)),
        ("IMAX", "090"),
        ("PAPP", "%05d" % power),
        ("HHPHC", "A"),
        ("MOTDETAT", "000000"),
    ]
    lines = []
    for tag, value in groups:
        line = encode_line(tag, value)
        if random.random() < corrupt_rate:
            pos = random.randrange(len(tag) + 1, len(line) - 2)
            line = line[:pos] + bytes([line[pos] ^ 0x01]) + line[pos + 1:]
        lines.append(line)
    return encode_frame(lines)


def make_silent_frame():
    """Frame sent when no meter is wired to the TIC input."""
    return bytes([STX, LF, CR, ETX])


def serve_discovery(host, port, announce, stop):
    """Answer discovery probes until *stop* is set."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind((host, port))
    sock.settimeout(0.2)
    reply = socket.inet_aton(announce)
    try:
        while not stop.is_set():
            try:
                data, peer = sock.recvfrom(64)
            except socket.timeout:
                continue
            if data == DISCOVERY_PROBE:
                sock.sendto(reply, peer)
    finally:
        sock.close()


def stream(conn, args, stop):
    """Send frames to one client until it goes away or *stop* is set."""
    index = 12345678
    try:
        while not stop.is_set():
            power = 690 + random.randint(-60, 60)
            index += power // 10
            if args.silent:
                data = make_silent_frame()
            else:
                data = make_frame(index, power, args.corrupt)
            while data:
                size = random.randint(1, 64)
                conn.sendall(data[:size])
                data = data[size:]
            time.sleep(args.interval)
    except OSError:
        pass
    finally:
        conn.close()


def run(args):
    """Run the simulator until interrupted."""
    stop = threading.Event()
    announce = args.announce or args.host
    threading.Thread(
        target=serve_discovery,
        args=(args.host, args.discovery_port, announce, stop),
        daemon=True,
    ).start()

    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind((args.host, args.port))
    server.listen(4)

    print("simulator: tcp {}:{} udp {}:{} announcing {}".format(
        args.host, args.port, args.host, args.discovery_port, announce),
        flush=True)

    try:
        while True:
            conn, _ = server.accept()
            threading.Thread(
                target=stream, args=(conn, args, stop), daemon=True
            ).start()
    except KeyboardInterrupt:
        pass
    finally:
        stop.set()
        server.close()


def main():
    parser = argparse.ArgumentParser(description="virtual LinkyPIC")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5561)
    parser.add_argument("--discovery-port", type=int, default=5051)
    parser.add_argument("--announce", help="address sent in discovery replies")
    parser.add_argument("--interval", type=float, default=1.0)
    parser.add_argument("--corrupt", type=float, default=0.0,
                        help="per-line corruption probability")
    parser.add_argument("--silent", action="store_true",
                        help="send empty frames only")
    run(parser.parse_args())


if __name__ == "__main__":
    main()
