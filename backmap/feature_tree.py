from backmap import gxf
from backmap.gxf import AttrVal, GxfLine
from backmap.remap_status import RemapStatus, TargetStatus, aggregate_remap_status, calc_remap_status

REMAP_STATUS_ATTR = "remap_status"
REMAP_ORIGINAL_ID_ATTR = "remap_original_id"
REMAP_ORIGINAL_LOCATION_ATTR = "remap_original_location"
REMAP_NUM_MAPPINGS_ATTR = "remap_num_mappings"
REMAP_TARGET_STATUS_ATTR = "remap_target_status"

# GTF subfeature type to the type of the record it belongs to
GTF_PARENT_TYPES = {
    gxf.TRANSCRIPT: gxf.GENE,
    gxf.EXON: gxf.TRANSCRIPT,
    gxf.CDS: gxf.TRANSCRIPT,
    gxf.START_CODON: gxf.TRANSCRIPT,
    gxf.UTR: gxf.TRANSCRIPT,
    gxf.STOP_CODON: gxf.TRANSCRIPT,
    gxf.STOP_CODON_REDEFINED_AS_SELENOCYSTEINE: gxf.TRANSCRIPT,
    gxf.SELENOCYSTEINE: gxf.TRANSCRIPT,
}


class GeneTreeError(Exception):
    pass


class FeatureNode(object):
    def __init__(self, feature, preceding_lines=None):
        self.feature = feature
        self.parent = None
        self.children = []
        self.remap_status = RemapStatus.NONE
        self.target_status = TargetStatus.NA
        self.num_mappings = 0
        self.mapped_features = []
        self.unmapped_features = []
        self.all_output_features = []
        self.preceding_lines = preceding_lines if preceding_lines is not None else []

    @property
    def featuretype(self):
        return self.feature.featuretype

    def get_matching(self, match_func):
        hits = []
        if match_func(self.feature):
            hits.append(self)
        for child in self.children:
            hits.extend(child.get_matching(match_func))
        return hits

    def add_child(self, node):
        if node.parent is not None:
            raise GeneTreeError("node already has a parent: " + str(node.feature))
        self.children.append(node)
        node.parent = self

    def add_mapped(self, mapped_feature):
        self.mapped_features.append(mapped_feature)
        self.all_output_features.append(mapped_feature)

    def add_unmapped(self, unmapped_feature):
        self.unmapped_features.append(unmapped_feature)
        self.all_output_features.append(unmapped_feature)

    def calc_remap_status(self, src_seq_in_mapping):
        return calc_remap_status(len(self.mapped_features), len(self.unmapped_features), src_seq_in_mapping)

    def set_remap_status(self, remap_status):
        self.remap_status = remap_status

    def set_remap_status_from_children(self, base_status=None):
        if base_status is None:
            base_status = self.remap_status
        self.remap_status = aggregate_remap_status(base_status, [child.remap_status for child in self.children])

    def recursive_calc_remap_status(self, src_seq_in_mapping):
        for child in self.children:
            child.recursive_calc_remap_status(src_seq_in_mapping)
        self.set_remap_status_from_children(self.calc_remap_status(src_seq_in_mapping))

    def set_num_mappings_attr(self):
        for mapped_feature in self.mapped_features:
            mapped_feature.attrs.update(AttrVal(REMAP_NUM_MAPPINGS_ATTR, str(self.num_mappings)))

    def set_remap_status_attr(self):
        for output_feature in self.all_output_features:
            output_feature.attrs.update(AttrVal(REMAP_STATUS_ATTR, str(self.remap_status)))
        for child in self.children:
            child.set_remap_status_attr()

    def set_remap_original_attrs(self):
        feature_id = self.feature.type_id
        for mapped_feature in self.mapped_features:
            if feature_id is not None:
                mapped_feature.attrs.update(AttrVal(REMAP_ORIGINAL_ID_ATTR, feature_id))
            mapped_feature.attrs.update(AttrVal(REMAP_ORIGINAL_LOCATION_ATTR, self.feature.location_str()))

    def set_target_status_attr(self):
        for output_feature in self.all_output_features:
            output_feature.attrs.update(AttrVal(REMAP_TARGET_STATUS_ATTR, str(self.target_status)))

    def dump_node(self, fh, indent=0):
        pad = "    " * indent
        fh.write("{}{} {} [{}]\n".format(pad, self.remap_status, str(self.feature), self.num_mappings))
        for output_feature in self.all_output_features:
            tag = "=>" if output_feature in self.mapped_features else "->"
            fh.write("{}  {} {}\n".format(pad, tag, str(output_feature)))

    def dump(self, fh, indent=0):
        self.dump_node(fh, indent)
        for child in self.children:
            child.dump(fh, indent + 1)

    def write(self, mapped_writer, unmapped_writer):
        for line in self.preceding_lines:
            mapped_writer.write(line)
        for mapped_feature in self.mapped_features:
            mapped_writer.write(mapped_feature)
        for unmapped_feature in self.unmapped_features:
            unmapped_writer.write(unmapped_feature)
        for child in self.children:
            child.write(mapped_writer, unmapped_writer)


def find_gff3_parent(leaf, feature):
    parent_attr = feature.find_attr(gxf.PARENT_ATTR)
    if parent_attr is None:
        raise GeneTreeError("GFF3 record has no Parent attribute: " + str(feature))
    parent_id = parent_attr.val
    node = leaf
    while node is not None:
        if node.feature.get_attr_value(gxf.ID_ATTR, None) == parent_id:
            return node
        node = node.parent
    raise GeneTreeError("parent " + parent_id + " not found in gene for: " + str(feature))


def get_gtf_parent_type(featuretype):
    if featuretype not in GTF_PARENT_TYPES:
        raise GeneTreeError("don't know how to handle GTF feature type: " + featuretype)
    return GTF_PARENT_TYPES[featuretype]


def find_gtf_parent(leaf, feature):
    parent_type = get_gtf_parent_type(feature.featuretype)
    node = leaf
    while node is not None and node.featuretype != parent_type:
        node = node.parent
    if node is None:
        raise GeneTreeError("no " + parent_type + " record found for: " + str(feature))
    check_attrs = [gxf.GENE_ID_ATTR]
    if parent_type == gxf.TRANSCRIPT:
        check_attrs.append(gxf.TRANSCRIPT_ID_ATTR)
    for attr_name in check_attrs:
        if feature.get_attr_value(attr_name, None) != node.feature.get_attr_value(attr_name, None):
            raise GeneTreeError(attr_name + " does not match " + parent_type + " record for: " + str(feature))
    return node


def is_top_level_record(feature, gxf_format):
    if gxf_format == gxf.GFF3_FORMAT:
        return not feature.has_attr(gxf.PARENT_ATTR)
    return feature.featuretype == gxf.GENE or not feature.has_attr(gxf.GENE_ID_ATTR)


def is_gene_record_end(gene_feature, feature, gxf_format):
    if feature.featuretype == gxf.GENE or is_top_level_record(feature, gxf_format):
        return True
    if gxf_format == gxf.GFF3_FORMAT:
        return False
    return (feature.seqid != gene_feature.seqid or
            feature.get_attr_value(gxf.GENE_ID_ATTR, None) != gene_feature.get_attr_value(gxf.GENE_ID_ATTR, None))


def push_back(parser, queued_lines, record=None):
    for line in queued_lines:
        parser.push(line)
    if record is not None:
        parser.push(record)


def gene_tree_factory(parser, gene_feature, preceding_lines=None):
    """Read the records belonging to gene_feature from the parser into a tree.
    gene_feature is normally a gene, but any top-level record, such as a
    chromosome or biological_region, is accepted along with its children.
    Records that are not part of the tree are pushed back."""
    if not is_top_level_record(gene_feature, parser.gxf_format):
        raise GeneTreeError("expected a gene or other top-level record, found: " + str(gene_feature))
    root = FeatureNode(gene_feature, preceding_lines)
    leaf = root
    queued_lines = []
    record = parser.next()
    while record is not None:
        if isinstance(record, GxfLine):
            queued_lines.append(record)
        elif is_gene_record_end(gene_feature, record, parser.gxf_format):
            push_back(parser, queued_lines, record)
            return root
        else:
            if parser.gxf_format == gxf.GFF3_FORMAT:
                parent = find_gff3_parent(leaf, record)
            else:
                parent = find_gtf_parent(leaf, record)
            leaf = FeatureNode(record, queued_lines)
            parent.add_child(leaf)
            queued_lines = []
        record = parser.next()
    push_back(parser, queued_lines)
    return root
