# ntp_server.py - stateless NTPv4 responder over UDP
# Socket calls: socket() bind() recvfrom() sendto()
import argparse,socket,sys,threading
from ntp_protocol import (Packet,NTP_PORT,VERSION,SERVER,MalformedPacketError,FatalSetupError,
                          TransientReceiveError,encode_now,pack_li_vn_mode)

STRATUM=2; PRECISION=-20           # secondary server, ~1us clock resolution
ROOT_DELAY=ROOT_DISP=1<<16          # 1.0 s in 16.16 fixed point
REF_ID=0x7F000001                   # 127.0.0.1, the server is its own reference
RECV_SIZE=1024                      # larger than PKT_SIZE so oversized datagrams arrive whole

def console_sink(event,**f):
    if event=="start": print(f"RFC-5905 compatible NTP server running on {f['host']}:{f['port']}")
    elif event=="request":
        print(f"[NTP] Client={f['client_ip']}:{f['client_port']}  VN={f['version']}  Mode={f['mode']}")
    elif event=="timestamps":
        # single write per event
        print(f"[NTP] ORIG = {f['origin']}\n[NTP] RX   = {f['receive']}\n[NTP] TX   = {f['transmit']}")
    elif event=="stop": print("stopped")

def build_response(req,client_now,clock=encode_now):
    rep=Packet()
    rep.li_vn_mode=pack_li_vn_mode(0,VERSION,SERVER)
    rep.stratum=STRATUM; rep.poll=req.poll; rep.precision=PRECISION
    rep.root_delay=ROOT_DELAY; rep.root_dispersion=ROOT_DISP; rep.ref_id=REF_ID
    rep.ref_tm=client_now
    rep.orig_tm=req.tx_tm
    rep.rx_tm=client_now
    rep.tx_tm=clock()               # second read, taken last
    return rep

def open_socket(host,port):
    try: udp=socket.socket(socket.AF_INET,socket.SOCK_DGRAM)    # socket()
    except OSError as e: raise FatalSetupError(f"socket: {e}") from e
    try: udp.bind((host,port))                                  # bind()
    except OSError as e:
        udp.close(); raise FatalSetupError(f"bind {host}:{port}: {e}") from e
    return udp

def receive(udp):
    try: return udp.recvfrom(RECV_SIZE)                         # recvfrom()
    except OSError as e: raise TransientReceiveError(str(e)) from e

def handle(udp,data,addr,rx,sink,clock=encode_now):
    try: req=Packet.deserialize(data)
    except MalformedPacketError: return False
    rep=build_response(req,rx,clock)
    try: udp.sendto(rep.serialize(),addr)                       # sendto()
    except OSError: return False    # best effort, timestamps are single-use
    sink("request",client_ip=addr[0],client_port=addr[1],version=req.version,mode=req.mode)
    sink("timestamps",origin=req.tx_tm.human(),receive=rep.rx_tm.human(),transmit=rep.tx_tm.human())
    return True

def serve(udp,sink=console_sink,clock=encode_now,threaded=False,stop=None):
    while stop is None or not stop.is_set():
        try: data,addr=receive(udp)
        except TransientReceiveError: continue
        rx=clock()
        if threaded: threading.Thread(target=handle,args=(udp,data,addr,rx,sink,clock),daemon=True).start()
        else: handle(udp,data,addr,rx,sink,clock)

def main(argv=None):
    ap=argparse.ArgumentParser(description="Minimal RFC 5905 NTP server")
    ap.add_argument("--host",default="0.0.0.0")
    ap.add_argument("--port",type=int,default=NTP_PORT)
    ap.add_argument("--threaded",action="store_true",help="answer each datagram on its own thread")
    args=ap.parse_args(argv)
    try: udp=open_socket(args.host,args.port)
    except FatalSetupError as e:
        print(f"fatal: {e}",file=sys.stderr); return 1
    with udp:
        console_sink("start",host=args.host,port=args.port)
        try: serve(udp,console_sink,threaded=args.threaded)
        except KeyboardInterrupt: console_sink("stop")
    return 0

if __name__=="__main__": sys.exit(main())
