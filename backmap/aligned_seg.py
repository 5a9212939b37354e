class aligned_seg:
    def __init__(self, aln_id, query_name, target_name, query_block_start, query_block_end, target_block_start,
                 target_block_end, is_reverse):
        self.aln_id = aln_id
        self.query_name = query_name
        self.target_name = target_name
        self.query_block_start = query_block_start
        self.query_block_end = query_block_end
        self.is_reverse = is_reverse
        self.target_block_start = target_block_start
        self.target_block_end = target_block_end

    def size(self):
        return self.query_block_end - self.query_block_start

    def swap(self):
        return aligned_seg(self.aln_id, self.target_name, self.query_name, self.target_block_start,
                           self.target_block_end, self.query_block_start, self.query_block_end, self.is_reverse)
