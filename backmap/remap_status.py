from backmap import gxf
from enum import Enum


class RemapStatus(Enum):
    NONE = "none"
    FULL_CONTIG = "full_contig"
    FULL_FRAGMENT = "full_fragment"
    PARTIAL = "partial"
    DELETED = "deleted"
    NO_SEQ_MAP = "no_seq_map"
    GENE_CONFLICT = "gene_conflict"
    GENE_SIZE_CHANGE = "gene_size_change"
    AUTOMATIC_SMALL_NCRNA_GENE = "automatic_small_ncrna_gene"
    AUTOMATIC_GENE = "automatic_gene"
    PSEUDOGENE = "pseudogene"
    INELIGIBLE = "ineligible"

    def __str__(self):
        return self.value


class TargetStatus(Enum):
    NA = "na"
    NEW = "new"
    LOST = "lost"
    OVERLAP = "overlap"
    NONOVERLAP = "nonOverlap"

    def __str__(self):
        return self.value


# aggregation precedence, higher wins
STATUS_PRECEDENCE = {
    RemapStatus.NONE: 0,
    RemapStatus.FULL_CONTIG: 1,
    RemapStatus.FULL_FRAGMENT: 2,
    RemapStatus.PARTIAL: 3,
    RemapStatus.DELETED: 4,
    RemapStatus.NO_SEQ_MAP: 5,
}

FULL_STATUSES = (RemapStatus.FULL_CONTIG, RemapStatus.FULL_FRAGMENT)

SMALL_NCRNA_BIOTYPES = ("miRNA", "misc_RNA", "ribozyme", "rRNA", "scaRNA", "scRNA", "snoRNA", "snRNA", "sRNA",
                        "vault_RNA", "Y_RNA", "Mt_tRNA", "Mt_rRNA")
AUTOMATIC_LEVEL = "3"
AUTOMATIC_SOURCE = "ENSEMBL"


def calc_remap_status(num_mapped, num_unmapped, src_seq_in_mapping):
    if not src_seq_in_mapping:
        return RemapStatus.NO_SEQ_MAP
    if num_mapped == 0 and num_unmapped > 0:
        return RemapStatus.DELETED
    if num_unmapped > 0:
        return RemapStatus.PARTIAL
    if num_mapped == 1:
        return RemapStatus.FULL_CONTIG
    if num_mapped > 1:
        return RemapStatus.FULL_FRAGMENT
    return RemapStatus.NONE


def get_precedence(status):
    if status not in STATUS_PRECEDENCE:
        raise ValueError("remap status can't be aggregated: " + str(status))
    return STATUS_PRECEDENCE[status]


def aggregate_remap_status(base_status, child_statuses):
    status = base_status
    for child_status in child_statuses:
        if get_precedence(child_status) > get_precedence(status):
            status = child_status
    return status


class RemapPolicy(object):

    def __init__(self, max_gene_size_change=0.5, max_small_ncrna_size=300, small_ncrna_biotypes=SMALL_NCRNA_BIOTYPES):
        self.max_gene_size_change = max_gene_size_change
        self.max_small_ncrna_size = max_small_ncrna_size
        self.small_ncrna_biotypes = small_ncrna_biotypes

    @classmethod
    def from_args(cls, args):
        return cls(max_gene_size_change=args.max_gene_size_change, max_small_ncrna_size=args.max_small_ncrna_size)

    def is_automatic(self, gene):
        return gene.get_attr_value(gxf.LEVEL_ATTR, None) == AUTOMATIC_LEVEL or gene.source == AUTOMATIC_SOURCE

    def is_pseudogene(self, gene):
        biotype = gene.type_biotype
        return biotype is not None and "pseudogene" in biotype

    def is_small_ncrna(self, gene):
        return gene.type_biotype in self.small_ncrna_biotypes and gene.size() <= self.max_small_ncrna_size

    def gene_size_changed(self, src_gene, mapped_gene):
        return abs(mapped_gene.size() - src_gene.size()) / src_gene.size() > self.max_gene_size_change

    def fallback_status(self, gene):
        if self.is_pseudogene(gene):
            return RemapStatus.PSEUDOGENE
        if self.is_automatic(gene):
            if self.is_small_ncrna(gene):
                return RemapStatus.AUTOMATIC_SMALL_NCRNA_GENE
            return RemapStatus.AUTOMATIC_GENE
        return None


def is_gene_conflict(src_gene, mapped_genes, overlapping_target_genes):
    if len(mapped_genes) > 1:
        return True
    if len(overlapping_target_genes) == 0:
        return False
    base_id = gxf.get_base_id(src_gene.type_id)
    return all(gxf.get_base_id(target_gene.type_id) != base_id for target_gene in overlapping_target_genes)


def calc_gene_remap_status(policy, src_gene, base_status, mapped_genes, target_gene, overlapping_target_genes):
    if base_status in FULL_STATUSES:
        if is_gene_conflict(src_gene, mapped_genes, overlapping_target_genes):
            return RemapStatus.GENE_CONFLICT
        if policy.gene_size_changed(src_gene, mapped_genes[0]):
            return RemapStatus.GENE_SIZE_CHANGE
        return base_status
    fallback = policy.fallback_status(src_gene)
    if fallback is None:
        return base_status
    if target_gene is None:
        return RemapStatus.INELIGIBLE
    return fallback


def calc_target_status(target_feature, mapped_features):
    if target_feature is None:
        return TargetStatus.NEW
    if len(mapped_features) == 0:
        return TargetStatus.LOST
    for mapped_feature in mapped_features:
        if mapped_feature.overlaps(target_feature):
            return TargetStatus.OVERLAP
    return TargetStatus.NONOVERLAP
