# ntp_protocol.py - 48-byte NTPv4 packet, 64-bit timestamps, offset/rtt math
import struct, time
from collections import namedtuple
from datetime import datetime, timedelta, timezone

NTP_PORT=123; PKT_SIZE=48
DELTA=2_208_988_800        # gap: NTP starts 1900, Unix starts 1970
FMT="!BBbbIII8I"          # 4 single bytes + 11 x 4-byte words = 48 bytes total
NS=1_000_000_000; FRAC=2**32
VERSION=4
CLIENT=3; SERVER=4         # association modes used here
UNIX_EPOCH=datetime(1970,1,1,tzinfo=timezone.utc)

class NTPError(Exception): pass
class MalformedPacketError(NTPError,ValueError): pass
class FatalSetupError(NTPError): pass
class TransientReceiveError(NTPError): pass

# NTP 64-bit timestamp; tuple order matches the 64-bit value order
class Timestamp(namedtuple("Timestamp","seconds fraction")):
    __slots__=()
    @property
    def value(self): return (self.seconds<<32)|self.fraction
    def human(self): return decode_to_human(self.seconds,self.fraction)

ZERO=Timestamp(0,0)

def to_ntp(unix_ns):
    s,ns=divmod(unix_ns,NS)
    return Timestamp((s+DELTA)&0xFFFFFFFF,(ns*FRAC+NS//2)//NS)   # round(ns*2^32/1e9)

def to_unix_ns(s,f): return (s-DELTA)*NS+(f*NS+FRAC//2)//FRAC
def to_unix(s,f):    return (s-DELTA)+f/FRAC

def encode_now(clock=time.time_ns):
    try: return to_ntp(clock())
    except OSError as e:
        print(f"[NTP] clock read failed ({e}), using zero timestamp")
        return ZERO

def decode_to_human(s,f):
    secs,nsec=divmod(to_unix_ns(s,f),NS)
    dt=UNIX_EPOCH+timedelta(seconds=secs)
    return f"{dt:%Y-%m-%d %H:%M:%S}.{nsec:09d}"

def pack_li_vn_mode(li,vn,mode): return ((li&0x3)<<6)|((vn&0x7)<<3)|(mode&0x7)

class Packet:
    def __init__(self):
        self.li_vn_mode=0; self.stratum=0; self.poll=0; self.precision=0
        self.root_delay=self.root_dispersion=self.ref_id=0
        self.ref_tm=self.orig_tm=self.rx_tm=self.tx_tm=ZERO

    @property
    def leap(self):    return (self.li_vn_mode>>6)&0x3
    @property
    def version(self): return (self.li_vn_mode>>3)&0x7
    @property
    def mode(self):    return self.li_vn_mode&0x7

    def serialize(self):
        return struct.pack(FMT,self.li_vn_mode,self.stratum,self.poll,self.precision,
            self.root_delay,self.root_dispersion,self.ref_id,
            *self.ref_tm,*self.orig_tm,*self.rx_tm,*self.tx_tm)

    @classmethod
    def deserialize(cls,d):
        # short data is never partially read; longer data means extension fields/MAC
        if len(d)!=PKT_SIZE: raise MalformedPacketError(f"bad size {len(d)}")
        w=struct.unpack(FMT,d)
        p=cls(); p.li_vn_mode,p.stratum,p.poll,p.precision=w[:4]
        p.root_delay,p.root_dispersion,p.ref_id=w[4:7]
        p.ref_tm=Timestamp(*w[7:9]); p.orig_tm=Timestamp(*w[9:11])
        p.rx_tm=Timestamp(*w[11:13]); p.tx_tm=Timestamp(*w[13:15])
        return p

    def offset(self,t4):
        T1,T2,T3=to_unix(*self.orig_tm),to_unix(*self.rx_tm),to_unix(*self.tx_tm)
        return ((T2-T1)+(T3-t4))/2   # θ = ((T2-T1)+(T3-T4))/2

    def rtt(self,t4):
        T1,T2,T3=to_unix(*self.orig_tm),to_unix(*self.rx_tm),to_unix(*self.tx_tm)
        return (t4-T1)-(T3-T2)       # δ = (T4-T1)-(T3-T2)
