from backmap import feature_tree, gxf, gxf_io, __version__
from backmap.feature_tree import GeneTreeError
from backmap.gene_mapper import GeneMapper
from backmap.genome_alignments import AlignmentFormatError, load_genome_alignments
from backmap.gxf import GxfLine, GxfParseError
from backmap.remap_status import RemapPolicy
from backmap.target_annotations import load_target_annotations
from multiprocessing import Pool
import argparse
import os
import sys

gene_mapper = None


def main(arglist=None):
    args = parse_args(arglist)
    try:
        run_all_backmap_steps(args)
    except (GxfParseError, GeneTreeError, AlignmentFormatError) as e:
        remove_output_files(args)
        sys.exit("ERROR: " + str(e))


def remove_output_files(args):
    for file in (args.mapped_output, args.unmapped_output, args.transcript_alignments):
        if file is not None and os.path.exists(file):
            os.remove(file)


def run_all_backmap_steps(args):
    print("loading alignments")
    genome_alns = load_genome_alignments([args.alignments])
    target_annotations = None
    if args.target_annotation is not None:
        print("loading target annotations")
        target_annotations = load_target_annotations(args.target_annotation)
    print("mapping genes")
    if args.transcript_alignments is not None:
        with open(args.transcript_alignments, 'w') as transcript_psl_fh:
            num_genes = map_annotation(args, genome_alns, target_annotations, transcript_psl_fh)
    else:
        num_genes = map_annotation(args, genome_alns, target_annotations)
    print("mapped " + str(num_genes) + " genes")


def map_annotation(args, genome_alns, target_annotations, transcript_psl_fh=None):
    mapper = GeneMapper(genome_alns, target_annotations, RemapPolicy.from_args(args), transcript_psl_fh)
    par_id_hack = gxf_io.PAR_ID_HACK_OLD if args.old_par_id_hack else gxf_io.PAR_ID_HACK_CURRENT
    with gxf_io.GxfParser(args.input_annotation, args.format) as parser:
        out_format = args.format if args.format is not None else parser.gxf_format
        with gxf_io.GxfWriter(args.mapped_output, out_format, par_id_hack) as mapped_writer, \
                gxf_io.GxfWriter(args.unmapped_output, out_format, par_id_hack) as unmapped_writer:
            return map_all_genes(parser, mapper, mapped_writer, unmapped_writer, args)


def map_all_genes(parser, mapper, mapped_writer, unmapped_writer, args):
    num_genes = 0
    if args.p > 1:
        with Pool(args.p, initializer=init_worker, initargs=(mapper,)) as pool:
            for record in pool.imap(map_record, read_gene_records(parser)):
                num_genes += write_record(record, mapped_writer, unmapped_writer, args)
            pool.close()
            pool.join()
    else:
        for record in read_gene_records(parser):
            if isinstance(record, feature_tree.FeatureNode):
                mapper.map_record(record)
            num_genes += write_record(record, mapped_writer, unmapped_writer, args)
    return num_genes


def init_worker(mapper):
    global gene_mapper
    gene_mapper = mapper


def map_record(record):
    if isinstance(record, feature_tree.FeatureNode):
        gene_mapper.map_record(record)
    return record


def read_gene_records(parser):
    record = parser.next()
    while record is not None:
        if isinstance(record, GxfLine):
            yield record
        else:
            yield feature_tree.gene_tree_factory(parser, record)
        record = parser.next()


def write_record(record, mapped_writer, unmapped_writer, args):
    if isinstance(record, GxfLine):
        mapped_writer.write(record)
        return 0
    if args.debug:
        record.dump(sys.stderr)
    record.write(mapped_writer, unmapped_writer)
    return 1 if record.featuretype == gxf.GENE else 0


def parse_args(arglist):
    parser = argparse.ArgumentParser(description='Map a GENCODE/Ensembl annotation between genome assemblies '
                                                 'using whole-genome alignments')
    parser.add_argument('alignments', help='alignments of the source assembly (query) to the target assembly, '
                                           'in PSL (.psl, .psl.gz), SAM (.sam) or BAM (.bam) format')
    parser.add_argument('input_annotation', help='annotation to map, in GFF3 or GTF format')
    parser.add_argument('mapped_output', help='write mapped features to this file')
    parser.add_argument('unmapped_output', help='write features that could not be mapped to this file')

    annotgrp = parser.add_argument_group('Annotation')
    annotgrp.add_argument(
        '-format', choices=[gxf.GFF3_FORMAT, gxf.GTF_FORMAT],
        help='format of the input and output annotations; by default it is determined from the input file name'
    )
    annotgrp.add_argument(
        '-target_annotation', metavar='GXF',
        help='existing annotation of the target assembly, used to choose between multiple mappings and to '
             'classify genes'
    )
    annotgrp.add_argument(
        '-old_par_id_hack', action='store_true',
        help='write GTF PAR ids on chrY with the old ENSGR/ENSTR convention instead of the _PAR_Y suffix'
    )

    policygrp = parser.add_argument_group('Gene classification')
    policygrp.add_argument(
        '-max_gene_size_change', default=0.5, metavar='F', type=float,
        help='a fully mapped gene whose span changes by more than a fraction F of its original size is '
             'classified as gene_size_change; by default F=0.5'
    )
    policygrp.add_argument(
        '-max_small_ncrna_size', default=300, metavar='N', type=int,
        help='maximum size of an automatically annotated small ncRNA gene; by default N=300'
    )

    parser.add_argument('-V', '--version', help='show program version', action='version', version='v' + __version__)
    parser.add_argument(
        '-transcript_alignments', metavar='FILE', help='write the exon alignment of each mapped transcript to FILE '
                                                       'in PSL format'
    )
    parser.add_argument(
        '-p', default=1, type=int, metavar='P', help='use p parallel processes to map genes; by default p=1'
    )
    parser.add_argument('-debug', action='store_true', help='print the mapped gene trees to stderr')
    parser._positionals.title = 'Required input'
    parser._optionals.title = 'Miscellaneous settings'
    parser._action_groups = [parser._positionals, annotgrp, policygrp, parser._optionals]
    args = parser.parse_args(arglist)
    if args.p < 1:
        parser.error("-p must be at least 1")
    if args.p > 1 and args.transcript_alignments is not None:
        parser.error("-transcript_alignments can't be used with -p greater than 1")
    if args.max_gene_size_change < 0:
        parser.error("-max_gene_size_change must not be negative")
    return args


if __name__ == "__main__":
    main()
