from backmap import aligned_seg, remap_utils
from interlap import InterLap
import numpy as np
import gzip
import pysam


class AlignmentFormatError(Exception):
    pass


class GenomeAlignment(object):
    # blocks are zero-based half-open in forward coordinates, sorted by query
    # start; on reverse alignments query qs + k aligns to target te - 1 - k

    def __init__(self, aln_id, query_name, query_size, target_name, target_size, is_reverse, blocks):
        self.aln_id = aln_id
        self.query_name = query_name
        self.query_size = query_size
        self.target_name = target_name
        self.target_size = target_size
        self.is_reverse = is_reverse
        self.blocks = sorted(blocks, key=lambda b: b.query_block_start)
        self.query_ends = np.array([b.query_block_end for b in self.blocks], dtype=np.int64)

    @property
    def query_start(self):
        return self.blocks[0].query_block_start

    @property
    def query_end(self):
        return self.blocks[-1].query_block_end

    @property
    def target_start(self):
        return min(b.target_block_start for b in self.blocks)

    @property
    def target_end(self):
        return max(b.target_block_end for b in self.blocks)

    def aligned_bases(self):
        return sum(b.size() for b in self.blocks)

    def query_fully_mapped(self):
        return self.aligned_bases() == self.query_size

    def swap(self):
        return GenomeAlignment(self.aln_id, self.target_name, self.target_size, self.query_name, self.query_size,
                               self.is_reverse, [b.swap() for b in self.blocks])

    def project(self, start, end):
        """Project the query range [start, end).  Returns the mapped pieces as
        (query_start, query_end, target_start, target_end) in query order and
        the query ranges that are not aligned."""
        mapped, unmapped = [], []
        pos = start
        i = int(np.searchsorted(self.query_ends, start, side='right'))
        while i < len(self.blocks) and self.blocks[i].query_block_start < end:
            block = self.blocks[i]
            q_s = max(start, block.query_block_start)
            q_e = min(end, block.query_block_end)
            if q_s > pos:
                unmapped.append((pos, q_s))
            if self.is_reverse:
                t_s = block.target_block_end - (q_e - block.query_block_start)
                t_e = block.target_block_end - (q_s - block.query_block_start)
            else:
                t_s = block.target_block_start + (q_s - block.query_block_start)
                t_e = block.target_block_start + (q_e - block.query_block_start)
            mapped.append((q_s, q_e, t_s, t_e))
            pos = q_e
            i += 1
        if pos < end:
            unmapped.append((pos, end))
        return mapped, unmapped

    def __repr__(self):
        return "GenomeAlignment({}:{}-{} -> {}:{}-{} {})".format(self.query_name, self.query_start, self.query_end,
                                                              self.target_name, self.target_start, self.target_end,
                                                              "-" if self.is_reverse else "+")


def source_range(piece, cur_start, cur_end):
    src_start, src_end, piece_start, piece_end, rev = piece
    if rev:
        return src_end - (cur_end - piece_start), src_end - (cur_start - piece_start)
    return src_start + (cur_start - piece_start), src_start + (cur_end - piece_start)


def project_through(alignments, start, end):
    """Project [start, end) through a chain of alignments.  Returns pieces as
    (src_start, src_end, target_start, target_end, is_reverse) and the merged
    source ranges that fell out of the chain."""
    pieces = [(start, end, start, end, False)]
    unmapped = []
    for aln in alignments:
        next_pieces = []
        for piece in pieces:
            mapped, gaps = aln.project(piece[2], piece[3])
            for q_s, q_e, t_s, t_e in mapped:
                src_s, src_e = source_range(piece, q_s, q_e)
                next_pieces.append((src_s, src_e, t_s, t_e, piece[4] != aln.is_reverse))
            for q_s, q_e in gaps:
                unmapped.append(source_range(piece, q_s, q_e))
        pieces = next_pieces
    return pieces, remap_utils.merge_ranges(unmapped)


def compose(first_aln, second_aln, aln_id=None):
    blocks = []
    for block in first_aln.blocks:
        pieces, unmapped = project_through([first_aln, second_aln], block.query_block_start, block.query_block_end)
        for src_s, src_e, t_s, t_e, rev in pieces:
            blocks.append(aligned_seg.aligned_seg(first_aln.aln_id, first_aln.query_name, second_aln.target_name,
                                                  src_s, src_e, t_s, t_e, rev))
    if len(blocks) == 0:
        return None
    return GenomeAlignment(second_aln.aln_id if aln_id is None else aln_id, first_aln.query_name,
                           first_aln.query_size, second_aln.target_name, second_aln.target_size,
                           first_aln.is_reverse != second_aln.is_reverse, blocks)


def target_overlaps(aln, strand, feature):
    if feature is None or aln.target_name != feature.seqid:
        return False
    if remap_utils.get_strand(strand, aln.is_reverse) != feature.strand:
        return False
    return remap_utils.count_overlap(aln.target_start + 1, aln.target_end, feature.start, feature.end) > 0


class ExonsMapping(object):

    def __init__(self, src_aln, mapped_alns, strand):
        self.src_aln = src_aln
        self.mapped_alns = mapped_alns
        self.strand = strand
        self.sort_mapped(None, None)

    def have_mappings(self):
        return len(self.mapped_alns) > 0

    def get_mapped(self):
        if len(self.mapped_alns) == 0:
            return None
        return self.mapped_alns[0]

    def sort_mapped(self, target_transcript, target_gene):
        self.mapped_alns.sort(key=lambda aln: (not target_overlaps(aln, self.strand, target_transcript),
                                               not target_overlaps(aln, self.strand, target_gene),
                                               -aln.aligned_bases(), aln.target_name, aln.target_start))


class GenomeAlignments(object):
    def __init__(self):
        self.alns_by_query = {}
        self.intervals = {}
        self.num_alns = 0

    def add(self, aln):
        self.alns_by_query.setdefault(aln.query_name, []).append(aln)
        self.num_alns += 1

    def build_index(self):
        self.intervals = {}
        for query_name, alns in self.alns_by_query.items():
            inter = InterLap()
            inter.update([[aln.query_start, aln.query_end - 1, [aln.aln_id, aln]] for aln in alns])
            self.intervals[query_name] = inter

    def have_query(self, query_name):
        return query_name in self.alns_by_query

    def find_overlapping(self, query_name, start, end):
        if query_name not in self.intervals:
            return []
        overlaps = [overlap[2] for overlap in self.intervals[query_name].find((start, end - 1))]
        overlaps.sort(key=lambda overlap: overlap[0])
        return [overlap[1] for overlap in overlaps]

    def project_features(self, query_name, feature_name, intervals, strand):
        """Project one-based, closed, sorted, non-overlapping intervals, such
        as the exons of a transcript, as a single unit.  Returns None if
        the sequence is not in the alignments."""
        if not self.have_query(query_name):
            return None
        src_aln = make_exons_alignment(query_name, self.alns_by_query[query_name][0].query_size, feature_name,
                                       intervals)
        mapped_alns = []
        for aln in self.find_overlapping(query_name, intervals[0][0] - 1, intervals[-1][1]):
            mapped_aln = compose(src_aln, aln)
            if mapped_aln is not None:
                mapped_alns.append(mapped_aln)
        return ExonsMapping(src_aln, mapped_alns, strand)


def make_exons_alignment(seqid, seq_size, feature_name, intervals):
    blocks = []
    offset = 0
    for start, end in intervals:
        size = end - start + 1
        blocks.append(aligned_seg.aligned_seg(0, feature_name, seqid, offset, offset + size, start - 1, end, False))
        offset += size
    return GenomeAlignment(0, feature_name, offset, seqid, seq_size, False, blocks)


def parse_psl_ints(value, line_num):
    try:
        return [int(v) for v in value.split(",") if v != ""]
    except ValueError:
        raise AlignmentFormatError("invalid PSL integer list on line " + str(line_num) + ": " + value)


def parse_psl_line(columns, aln_id, line_num):
    if len(columns) != 21:
        raise AlignmentFormatError("expected 21 columns in PSL, found " + str(len(columns)) + " on line " +
                                   str(line_num))
    strand = columns[8]
    if strand not in ("+", "-", "++", "+-", "-+", "--"):
        raise AlignmentFormatError("invalid PSL strand on line " + str(line_num) + ": " + strand)
    query_strand = strand[0]
    target_strand = strand[1] if len(strand) > 1 else "+"
    query_name, target_name = columns[9], columns[13]
    try:
        query_size, target_size, block_count = int(columns[10]), int(columns[14]), int(columns[17])
    except ValueError:
        raise AlignmentFormatError("invalid PSL integer on line " + str(line_num))
    block_sizes = parse_psl_ints(columns[18], line_num)
    query_starts = parse_psl_ints(columns[19], line_num)
    target_starts = parse_psl_ints(columns[20], line_num)
    if not (block_count == len(block_sizes) == len(query_starts) == len(target_starts)):
        raise AlignmentFormatError("PSL block count does not match block lists on line " + str(line_num))
    blocks = []
    for size, q_start, t_start in zip(block_sizes, query_starts, target_starts):
        if query_strand == "-":
            q_start = query_size - (q_start + size)
        if target_strand == "-":
            t_start = target_size - (t_start + size)
        blocks.append(aligned_seg.aligned_seg(aln_id, query_name, target_name, q_start, q_start + size, t_start,
                                              t_start + size, query_strand != target_strand))
    return GenomeAlignment(aln_id, query_name, query_size, target_name, target_size, query_strand != target_strand,
                           blocks)


def read_psl_file(file_name, genome_alns, aln_id=0):
    if file_name.endswith(".gz"):
        f = gzip.open(file_name, 'rt')
    else:
        f = open(file_name, 'r')
    header_lines = 0
    line_num = 0
    for line in f:
        line_num += 1
        if line_num == 1 and line.startswith("psLayout"):
            header_lines = 5
        if line_num <= header_lines or line.strip() == "" or line[0] == "#":
            continue
        aln_id += 1
        aln = parse_psl_line(line.rstrip("\r\n").split("\t"), aln_id, line_num)
        if len(aln.blocks) > 0:
            genome_alns.add(aln)
    f.close()
    return aln_id


def get_cigar_operations():
    return {"match": 0, "insertion": 1, "deletion": 2, "skip": 3, "soft_clip": 4, "hard_clip": 5,
            "seq_match": 7, "mismatch": 8}


def base_is_aligned(operation, cigar_operations):
    return operation in (cigar_operations["match"], cigar_operations["seq_match"], cigar_operations["mismatch"])


def is_query_gap(operation, cigar_operations):
    return operation in (cigar_operations["insertion"], cigar_operations["soft_clip"],
                         cigar_operations["hard_clip"])


def is_target_gap(operation, cigar_operations):
    return operation in (cigar_operations["deletion"], cigar_operations["skip"])


def get_aligned_blocks(alignment, aln_id, query_size):
    cigar_operations = get_cigar_operations()
    query_pos, target_pos = 0, alignment.reference_start
    new_blocks = []
    for operation, length in alignment.cigartuples:
        if base_is_aligned(operation, cigar_operations):
            if len(new_blocks) > 0 and new_blocks[-1][1] == query_pos and new_blocks[-1][3] == target_pos:
                new_blocks[-1][1] += length
                new_blocks[-1][3] += length
            else:
                new_blocks.append([query_pos, query_pos + length, target_pos, target_pos + length])
            query_pos += length
            target_pos += length
        elif is_query_gap(operation, cigar_operations):
            query_pos += length
        elif is_target_gap(operation, cigar_operations):
            target_pos += length
    blocks = []
    for q_start, q_end, t_start, t_end in new_blocks:
        if alignment.is_reverse:
            q_start, q_end = query_size - q_end, query_size - q_start
        blocks.append(aligned_seg.aligned_seg(aln_id, alignment.query_name, alignment.reference_name, q_start, q_end,
                                              t_start, t_end, alignment.is_reverse))
    return blocks


def read_sam_file(file_name, genome_alns, aln_id=0):
    mode = 'rb' if file_name.endswith(".bam") else 'r'
    try:
        sam_file = pysam.AlignmentFile(file_name, mode, check_sq=False)
    except ValueError as e:
        raise AlignmentFormatError("can't read " + file_name + ": " + str(e))
    target_sizes = dict(zip(sam_file.references, sam_file.lengths))
    for alignment in sam_file.fetch(until_eof=True):
        if alignment.is_unmapped or alignment.cigartuples is None:
            continue
        aln_id += 1
        query_size = alignment.infer_read_length()
        blocks = get_aligned_blocks(alignment, aln_id, query_size)
        if len(blocks) > 0:
            genome_alns.add(GenomeAlignment(aln_id, alignment.query_name, query_size, alignment.reference_name,
                                            target_sizes.get(alignment.reference_name, 0), alignment.is_reverse,
                                            blocks))
    sam_file.close()
    return aln_id


def load_genome_alignments(file_names):
    genome_alns = GenomeAlignments()
    aln_id = 0
    for file_name in file_names:
        if file_name.endswith(".psl") or file_name.endswith(".psl.gz"):
            aln_id = read_psl_file(file_name, genome_alns, aln_id)
        elif file_name.endswith(".sam") or file_name.endswith(".bam"):
            aln_id = read_sam_file(file_name, genome_alns, aln_id)
        else:
            raise AlignmentFormatError("expected alignments with an extension of .psl, .psl.gz, .sam or .bam: " +
                                       file_name)
    genome_alns.build_index()
    return genome_alns


def format_psl(aln):
    blocks = sorted(aln.blocks, key=lambda b: b.target_block_start)
    q_num_insert = q_base_insert = t_num_insert = t_base_insert = 0
    for prev, block in zip(blocks, blocks[1:]):
        t_gap = block.target_block_start - prev.target_block_end
        if aln.is_reverse:
            q_gap = prev.query_block_start - block.query_block_end
        else:
            q_gap = block.query_block_start - prev.query_block_end
        if q_gap > 0:
            q_num_insert += 1
            q_base_insert += q_gap
        if t_gap > 0:
            t_num_insert += 1
            t_base_insert += t_gap
    if aln.is_reverse:
        query_starts = [aln.query_size - b.query_block_end for b in blocks]
    else:
        query_starts = [b.query_block_start for b in blocks]
    columns = [aln.aligned_bases(), 0, 0, 0, q_num_insert, q_base_insert, t_num_insert, t_base_insert,
               "-" if aln.is_reverse else "+", aln.query_name, aln.query_size, aln.query_start, aln.query_end,
               aln.target_name, aln.target_size, aln.target_start, aln.target_end, len(blocks),
               "".join(str(b.size()) + "," for b in blocks), "".join(str(q) + "," for q in query_starts),
               "".join(str(b.target_block_start) + "," for b in blocks)]
    return "\t".join(str(column) for column in columns)


def write_psl(aln, out_file):
    out_file.write(format_psl(aln))
    out_file.write("\n")
