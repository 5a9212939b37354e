from backmap import gxf, remap_utils
from backmap.genome_alignments import project_through, write_psl


def get_exons(transcript_node):
    exons = [node.feature for node in transcript_node.get_matching(lambda f: f.featuretype == gxf.EXON)]
    if len(exons) == 0:
        exons = [transcript_node.feature]
    return remap_utils.merge_intervals([[exon.start, exon.end] for exon in exons])


def get_transcript_name(transcript):
    for attr_name in (gxf.TRANSCRIPT_ID_ATTR, gxf.ID_ATTR, gxf.GENE_ID_ATTR):
        value = transcript.get_attr_value(attr_name, None)
        if value is not None:
            return value
    return transcript.location_str()


def merge_pieces(pieces):
    merged = []
    for piece in sorted(pieces, key=lambda p: p[2]):
        if len(merged) > 0:
            src_s, src_e, t_s, t_e, rev = merged[-1]
            if t_e == piece[2] and rev == piece[4]:
                if not rev and src_e == piece[0]:
                    merged[-1] = (src_s, piece[1], t_s, piece[3], rev)
                    continue
                if rev and piece[1] == src_s:
                    merged[-1] = (piece[0], src_e, t_s, piece[3], rev)
                    continue
        merged.append(piece)
    return merged


def adjust_phase(feature, src_start, src_end):
    """phase of the part of feature covering the zero-based source range"""
    if feature.phase == ".":
        return feature.phase
    if feature.strand == "-":
        offset = feature.end - src_end
    else:
        offset = src_start - (feature.start - 1)
    return str((int(feature.phase) - offset) % 3)


class TranscriptMapper(object):
    """Maps the features of a transcript via the alignment of all of its exons
    to the target genome, so every feature lands on the same locus."""

    def __init__(self, genome_alns, transcript_node, target_annotations=None, transcript_psl_fh=None):
        self.transcript_node = transcript_node
        transcript = transcript_node.feature
        self.target_gene, self.target_transcript = None, None
        if target_annotations is not None:
            self.target_gene = target_annotations.get_gene_by_id(
                transcript.get_attr_value(gxf.GENE_ID_ATTR, None), transcript.seqid)
            self.target_transcript = target_annotations.get_transcript_by_id(
                transcript.get_attr_value(gxf.TRANSCRIPT_ID_ATTR, None), transcript.seqid)
        self.exons_mapping = self.all_exons_map(genome_alns)
        self.via_exons_alns = None
        if self.exons_mapping is not None:
            if transcript_psl_fh is not None:
                write_psl(self.exons_mapping.get_mapped(), transcript_psl_fh)
            self.via_exons_alns = [self.exons_mapping.src_aln.swap(), self.exons_mapping.get_mapped()]

    def all_exons_map(self, genome_alns):
        transcript = self.transcript_node.feature
        exons_mapping = genome_alns.project_features(transcript.seqid, get_transcript_name(transcript),
                                                     get_exons(self.transcript_node), transcript.strand)
        if exons_mapping is None:
            return None
        exons_mapping.sort_mapped(self.target_transcript, self.target_gene)
        if not exons_mapping.have_mappings():
            return None
        return exons_mapping

    def map_transcript_feature(self):
        node = self.transcript_node
        transcript = node.feature
        mapped_aln = self.exons_mapping.get_mapped() if self.exons_mapping is not None else None
        if mapped_aln is not None:
            node.add_mapped(transcript.clone(seqid=mapped_aln.target_name, start=mapped_aln.target_start + 1,
                                             end=mapped_aln.target_end,
                                             strand=remap_utils.get_strand(transcript.strand, mapped_aln.is_reverse)))
            node.num_mappings = len(self.exons_mapping.mapped_alns)
        if mapped_aln is None or not mapped_aln.query_fully_mapped():
            node.add_unmapped(transcript.clone())

    def map_feature(self, node):
        feature = node.feature
        if self.via_exons_alns is None:
            node.add_unmapped(feature.clone())
            return
        target_name = self.via_exons_alns[-1].target_name
        pieces, unmapped = project_through(self.via_exons_alns, feature.start - 1, feature.end)
        for src_s, src_e, t_s, t_e, rev in merge_pieces(pieces):
            node.add_mapped(feature.clone(seqid=target_name, start=t_s + 1, end=t_e,
                                          strand=remap_utils.get_strand(feature.strand, rev),
                                          phase=adjust_phase(feature, src_s, src_e)))
        for src_s, src_e in unmapped:
            node.add_unmapped(feature.clone(start=src_s + 1, end=src_e, phase=adjust_phase(feature, src_s, src_e)))

    def map_features(self, node):
        self.map_feature(node)
        for child in node.children:
            self.map_features(child)

    def map_transcript_features(self):
        self.map_transcript_feature()
        for child in self.transcript_node.children:
            self.map_features(child)
        return self.transcript_node
