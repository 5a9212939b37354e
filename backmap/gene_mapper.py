from backmap import gxf
from backmap.remap_status import calc_gene_remap_status, calc_target_status
from backmap.transcript_mapper import TranscriptMapper


def get_transcript_nodes(gene_node):
    return [child for child in gene_node.children if child.featuretype != gxf.EXON]


def group_loci(transcript_nodes):
    """mapped transcripts grouped by target sequence and strand, largest group
    first"""
    loci = {}
    order = []
    for transcript_node in transcript_nodes:
        for mapped in transcript_node.mapped_features:
            key = (mapped.seqid, mapped.strand)
            if key not in loci:
                loci[key] = []
                order.append(key)
            loci[key].append(mapped)
    keys = sorted(order, key=lambda key: -len(loci[key]))
    return [loci[key] for key in keys]


class GeneMapper(object):

    def __init__(self, genome_alns, target_annotations=None, policy=None, transcript_psl_fh=None):
        self.genome_alns = genome_alns
        self.target_annotations = target_annotations
        self.policy = policy
        self.transcript_psl_fh = transcript_psl_fh

    def map_transcript(self, transcript_node):
        TranscriptMapper(self.genome_alns, transcript_node, self.target_annotations,
                         self.transcript_psl_fh).map_transcript_features()

    def map_record(self, root_node):
        if root_node.featuretype == gxf.GENE:
            return self.map_gene(root_node)
        return self.copy_unmapped(root_node)

    def copy_unmapped(self, root_node):
        # records outside of genes are written unchanged to the unmapped output
        for node in root_node.get_matching(lambda f: True):
            node.add_unmapped(node.feature.clone())
        return root_node

    def map_gene(self, gene_node):
        transcript_nodes = get_transcript_nodes(gene_node)
        if len(transcript_nodes) == 0:
            self.map_transcript(gene_node)
        else:
            for transcript_node in transcript_nodes:
                self.map_transcript(transcript_node)
            self.map_gene_feature(gene_node, transcript_nodes)
        self.classify(gene_node)
        return gene_node

    def map_gene_feature(self, gene_node, transcript_nodes):
        gene = gene_node.feature
        loci = group_loci(transcript_nodes)
        for locus in loci:
            gene_node.add_mapped(gene.clone(seqid=locus[0].seqid, start=min(f.start for f in locus),
                                            end=max(f.end for f in locus), strand=locus[0].strand))
        gene_node.num_mappings = len(loci)
        if len(loci) == 0 or any(len(node.unmapped_features) > 0 for node in transcript_nodes):
            gene_node.add_unmapped(gene.clone())

    def classify(self, gene_node):
        src_seq_in_mapping = self.genome_alns.have_query(gene_node.feature.seqid)
        gene_node.recursive_calc_remap_status(src_seq_in_mapping)
        if self.target_annotations is not None:
            self.set_target_statuses(gene_node)
            self.refine_gene_status(gene_node)
        self.set_attributes(gene_node)

    def set_target_statuses(self, gene_node):
        gene = gene_node.feature
        gene_node.target_status = calc_target_status(
            self.target_annotations.get_gene_by_id(gene.get_attr_value(gxf.GENE_ID_ATTR, gene.type_id), gene.seqid),
            gene_node.mapped_features)
        for transcript_node in get_transcript_nodes(gene_node):
            transcript = transcript_node.feature
            transcript_node.target_status = calc_target_status(
                self.target_annotations.get_transcript_by_id(transcript.type_id, transcript.seqid),
                transcript_node.mapped_features)

    def refine_gene_status(self, gene_node):
        gene = gene_node.feature
        target_gene = self.target_annotations.get_gene_by_id(gene.get_attr_value(gxf.GENE_ID_ATTR, gene.type_id),
                                                             gene.seqid)
        overlapping_target_genes = []
        for mapped_gene in gene_node.mapped_features:
            overlapping_target_genes.extend(self.target_annotations.find_overlapping_genes(mapped_gene))
        gene_node.set_remap_status(calc_gene_remap_status(self.policy, gene, gene_node.remap_status,
                                                          gene_node.mapped_features, target_gene,
                                                          overlapping_target_genes))

    def set_attributes(self, gene_node):
        gene_node.set_remap_status_attr()
        nodes = [gene_node] + get_transcript_nodes(gene_node)
        for node in nodes:
            node.set_num_mappings_attr()
            node.set_remap_original_attrs()
            if self.target_annotations is not None:
                node.set_target_status_attr()
