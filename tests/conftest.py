# tests/conftest.py
import pytest


@pytest.fixture
def parallel_young_line():
    return (
        "2024-03-01T10:00:01.000+0000: 1.000: [GC (Allocation Failure) "
        "[PSYoungGen: 65536K->10720K(76288K)] 65536K->10736K(251392K), 0.0123456 secs] "
        "[Times: user=0.03 sys=0.01, real=0.01 secs]"
    )


@pytest.fixture
def parallel_full_line():
    return (
        "2024-03-01T10:05:00.000+0000: 300.000: [Full GC (Ergonomics) "
        "[PSYoungGen: 10720K->0K(76288K)] [ParOldGen: 160000K->150000K(175104K)] "
        "170720K->150000K(251392K), [Metaspace: 3000K->3000K(1056768K)], 0.5000000 secs] "
        "[Times: user=1.20 sys=0.02, real=0.50 secs]"
    )


@pytest.fixture
def three_young_gc_log():
    """Three Parallel young collections pausing 10ms, 20ms and 30ms, one minute apart."""
    return """Java HotSpot(TM) 64-Bit Server VM (25.311-b11) for linux-amd64 JRE (1.8.0_311-b11)
CommandLine flags: -XX:InitialHeapSize=262144000 -XX:+PrintGCDetails -XX:+UseParallelGC
2024-03-01T10:00:00.000+0000: 60.000: [GC (Allocation Failure) [PSYoungGen: 65536K->10720K(76288K)] 65536K->10736K(251392K), 0.0100000 secs] [Times: user=0.03 sys=0.01, real=0.01 secs]
application log line that is not a GC event
2024-03-01T10:01:00.000+0000: 120.000: [GC (Allocation Failure) [PSYoungGen: 76256K->10720K(76288K)] 76272K->20000K(251392K), 0.0200000 secs] [Times: user=0.03 sys=0.01, real=0.02 secs]
2024-03-01T10:02:00.000+0000: 180.000: [GC (Allocation Failure) [PSYoungGen: 76256K->10720K(76288K)] 85536K->30000K(251392K), 0.0300000 secs] [Times: user=0.03 sys=0.01, real=0.03 secs]
Heap
 PSYoungGen      total 76288K, used 20000K
"""


@pytest.fixture
def g1_unified_log():
    return """[2024-03-01T10:00:00.000+0000][0.010s][info][gc] Using G1
[2024-03-01T10:00:01.000+0000][1.000s][info][gc,start    ] GC(0) Pause Young (Normal) (G1 Evacuation Pause)
[2024-03-01T10:00:01.000+0000][1.000s][info][gc,heap     ] GC(0) Eden regions: 24->0(13)
[2024-03-01T10:00:01.004+0000][1.004s][info][gc          ] GC(0) Pause Young (Normal) (G1 Evacuation Pause) 24M->4M(256M) 4.000ms
[2024-03-01T10:00:11.000+0000][11.000s][info][gc          ] GC(1) Pause Young (Concurrent Start) (G1 Humongous Allocation) 100M->50M(256M) 6.000ms
[2024-03-01T10:00:12.000+0000][12.000s][info][gc          ] GC(2) Pause Remark 60M->60M(256M) 1.500ms
[2024-03-01T10:00:13.000+0000][13.000s][info][gc          ] GC(2) Pause Cleanup 60M->60M(256M) 0.500ms
[2024-03-01T10:00:21.000+0000][21.000s][info][gc          ] GC(3) Pause Young (Mixed) (G1 Evacuation Pause) 90M->40M(256M) 8.000ms
[2024-03-01T10:00:31.000+0000][31.000s][info][gc          ] GC(4) Pause Full (System.gc()) 80M->30M(256M) 120.000ms
"""


@pytest.fixture
def zgc_log():
    return """[2024-03-01T10:00:00.000+0000][0.010s][info][gc,init] Using The Z Garbage Collector
[2024-03-01T10:00:01.000+0000][1.000s][info][gc,start] GC(0) Garbage Collection (Warmup)
[2024-03-01T10:00:01.100+0000][1.100s][info][gc,phases] GC(0) Pause Mark Start 0.012ms
[2024-03-01T10:00:01.300+0000][1.300s][info][gc      ] GC(0) Garbage Collection (Warmup) 410M(10%)->180M(4%)
[2024-03-01T10:00:05.300+0000][5.300s][info][gc      ] GC(1) Garbage Collection (Allocation Rate) 1024M(25%)->512M(12%)
"""


def make_full_gc_lines(baselines_mb, capacity_mb=1000, start_uptime=10.0):
    """Unified G1 Full GC lines leaving the given heap baselines behind."""
    lines = []
    for index, after_mb in enumerate(baselines_mb):
        uptime = start_uptime + index * 60
        before_mb = min(capacity_mb, after_mb + 100)
        lines.append(
            f"[{uptime:.3f}s][info][gc] GC({index}) Pause Full (Allocation Failure) "
            f"{before_mb}M->{after_mb}M({capacity_mb}M) 250.000ms\n"
        )
    return lines


@pytest.fixture
def full_gc_lines():
    return make_full_gc_lines
