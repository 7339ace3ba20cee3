"""IP range blocklists in P2P plaintext, CIDR and packed binary formats, with command-line tools."""