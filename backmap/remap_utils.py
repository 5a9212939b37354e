def count_overlap(start1, end1, start2, end2):
    overlap = min(end1, end2) - max(start1, start2) + 1
    return overlap


def get_strand(strand, is_reverse):
    if strand == "." or not is_reverse:
        return strand
    if strand == "-":
        return "+"
    return "-"


def merge_intervals(intervals):
    if len(intervals) == 0:
        return []
    intervals = sorted([list(interval) for interval in intervals], key=lambda interval: interval[0])
    merged = [intervals[0]]
    for current in intervals[1:]:
        previous = merged[-1]
        if current[0] <= previous[1]:
            previous[1] = max(previous[1], current[1])
        else:
            merged.append(current)
    return merged


def merge_ranges(ranges):
    if len(ranges) == 0:
        return []
    ranges = sorted([list(r) for r in ranges], key=lambda r: r[0])
    merged = [ranges[0]]
    for current in ranges[1:]:
        previous = merged[-1]
        if current[0] <= previous[1]:
            previous[1] = max(previous[1], current[1])
        else:
            merged.append(current)
    return merged
