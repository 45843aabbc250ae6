# ntp_client.py - query client: offset, delay and jitter against an NTP server
import argparse,socket,statistics,sys,time
from ntp_protocol import Packet,NTP_PORT,VERSION,CLIENT,SERVER,MalformedPacketError,encode_now,pack_li_vn_mode

def make_request(t1):
    req=Packet(); req.li_vn_mode=pack_li_vn_mode(0,VERSION,CLIENT); req.tx_tm=t1
    return req

def query(server,port=NTP_PORT,timeout=2.0):
    with socket.socket(socket.AF_INET,socket.SOCK_DGRAM) as sock:   # socket()
        sock.settimeout(timeout)
        t1=encode_now()
        sock.sendto(make_request(t1).serialize(),(server,port))     # sendto()
        data,_=sock.recvfrom(1024)                                  # recvfrom()
        t4=time.time()
    rep=Packet.deserialize(data)
    if rep.mode!=SERVER: raise MalformedPacketError(f"mode {rep.mode} is not server")
    if rep.orig_tm!=t1: raise MalformedPacketError("origin does not echo our transmit time")
    return rep,t4

def run(server,port,count,interval):
    offsets=[]; rtts=[]
    print(f"Querying {server}:{port}  count={count}  interval={interval}s")
    for seq in range(1,count+1):
        try: rep,t4=query(server,port)
        except socket.timeout: print(f"seq={seq} timeout"); continue
        except MalformedPacketError as e: print(f"seq={seq} bad reply: {e}"); continue
        except OSError as e: print(f"seq={seq} error: {e}"); continue
        off=rep.offset(t4); rtt=rep.rtt(t4); offsets.append(off); rtts.append(rtt)
        print(f"seq={seq}  offset={off*1000:+.3f}ms  rtt={rtt*1000:.3f}ms  stratum={rep.stratum}  tx={rep.tx_tm.human()}")
        if seq<count: time.sleep(interval)
    if not offsets: return 1
    o=[x*1000 for x in offsets]; d=[x*1000 for x in rtts]
    print(f"\nsamples={len(o)}  mean_offset={statistics.mean(o):+.3f}ms  mean_rtt={statistics.mean(d):.3f}ms")
    if len(o)>1: print(f"jitter={statistics.stdev(o):.3f}ms  min_rtt={min(d):.3f}ms  max_rtt={max(d):.3f}ms")
    return 0

def main(argv=None):
    ap=argparse.ArgumentParser(description="Query an NTP server")
    ap.add_argument("--server",default="127.0.0.1")
    ap.add_argument("--port",type=int,default=NTP_PORT)
    ap.add_argument("--count",type=int,default=4)
    ap.add_argument("--interval",type=float,default=1.0)
    args=ap.parse_args(argv)
    return run(args.server,args.port,args.count,args.interval)

if __name__=="__main__": sys.exit(main())
