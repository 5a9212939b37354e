from backmap import gxf
from backmap.gxf import AttrVal, AttrVals, GxfFeature, GxfParseError
from backmap.gxf_io import GxfParser
from interlap import InterLap
import gffutils
import ujson as json


def load_target_annotations(annotation_file):
    gffutils.constants.ignore_url_escape_characters = True
    try:
        feature_db = gffutils.create_db(annotation_file, ":memory:", merge_strategy="create_unique", force=True,
                                        disable_infer_transcripts=True, disable_infer_genes=True)
    except (ValueError, IndexError) as e:
        find_problem_line(annotation_file)
        raise GxfParseError("can't load target annotations " + annotation_file + ": " + str(e))
    target_annotations = TargetAnnotations(get_genes(feature_db), get_transcripts(feature_db))
    feature_db.conn.close()
    return target_annotations


def find_problem_line(annotation_file):
    with GxfParser(annotation_file) as parser:
        for record in parser:
            pass


def row_to_feature(row):
    attrs = AttrVals()
    for name, values in json.loads(row[9]).items():
        values = [value for value in values if value != ""]
        if name != "" and len(values) > 0:
            attrs.append(AttrVal(name, values))
    return GxfFeature(row[1], row[2], row[3], row[4], row[5], row[6], row[7], row[8], attrs)


def get_genes(feature_db):
    c = feature_db.conn.cursor()
    query = "SELECT * FROM features WHERE featuretype = 'gene'"
    return [row_to_feature(tuple(result)) for result in c.execute(query)]


def get_transcripts(feature_db):
    c = feature_db.conn.cursor()
    query = '''SELECT b.* FROM relations join features as a on a.id = relations.parent join features as b on
    b.id = relations.child WHERE relations.level = 1 and a.featuretype = 'gene' '''
    return [row_to_feature(tuple(result)) for result in c.execute(query)]


def build_id_dict(features):
    id_dict = {}
    for feature in features:
        base_id = gxf.get_base_id(feature.type_id)
        if base_id is not None:
            id_dict.setdefault(base_id, []).append(feature)
    return id_dict


def build_interval_lists(features):
    feature_coords = {}
    for i, feature in enumerate(features):
        feature_coords.setdefault(feature.seqid, []).append([feature.start, feature.end, [i, feature]])
    intervals = {}
    for seqid, coords in feature_coords.items():
        inter = InterLap()
        inter.update(coords)
        intervals[seqid] = inter
    return intervals


def find_by_id(id_dict, feature_id, seqid):
    if feature_id is None:
        return None
    features = id_dict.get(gxf.get_base_id(feature_id), [])
    if len(features) == 0:
        return None
    for feature in features:
        if feature.seqid == seqid:
            return feature
    return features[0]


class TargetAnnotations(object):

    def __init__(self, genes, transcripts):
        self.genes_by_id = build_id_dict(genes)
        self.transcripts_by_id = build_id_dict(transcripts)
        self.gene_intervals = build_interval_lists(genes)

    def get_gene_by_id(self, gene_id, seqid):
        return find_by_id(self.genes_by_id, gene_id, seqid)

    def get_transcript_by_id(self, transcript_id, seqid):
        return find_by_id(self.transcripts_by_id, transcript_id, seqid)

    def find_overlapping_genes(self, feature):
        if feature.seqid not in self.gene_intervals:
            return []
        overlaps = self.gene_intervals[feature.seqid].find((feature.start, feature.end))
        return [overlap[2][1] for overlap in sorted(overlaps, key=lambda overlap: overlap[2][0]) if
                overlap[2][1].strand == feature.strand]
